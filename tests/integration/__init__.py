"""
Integration tests for the SQS -> S3 -> sink pipeline

These tests run the poller, fetcher, processor and disposition together
against moto's in-process S3 and SQS.
"""
