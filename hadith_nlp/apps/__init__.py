"""Building blocks of the hadith text-analysis engine."""
