"""
somleng-deploy Utils - Logging and redaction helpers.
"""
