"""Infrastructure modules for App Infra.

Provides the AWS CDK app and stack for the backend application.
"""
