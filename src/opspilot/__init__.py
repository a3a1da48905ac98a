"""
OpsPilot: automated incident response for misconfigured AWS Lambda functions.

Investigates with CloudWatch, diagnoses and plans with Amazon Bedrock, applies
guarded configuration changes and verifies the fix.
"""

__version__ = "0.1.0"
