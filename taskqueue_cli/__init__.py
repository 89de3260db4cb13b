"""Task Queue CLI - command line client for the job queue API"""

__version__ = "1.0.0"
