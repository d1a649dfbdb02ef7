"""
Bundle construction and submission.
"""
