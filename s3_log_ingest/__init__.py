"""
S3 log ingestion driven by SQS event notifications
"""

__version__ = "0.1.0"
