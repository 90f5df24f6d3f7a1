"""Import bank statement CSV files into an hledger journal."""

__version__ = "0.1.0"
