"""directory_shared — Shared modules for the organization directory Lambdas.

Provides:
    - Process configuration and lazy AWS clients (DynamoDB, SQS)
    - HTTP response helpers with CORS
    - DynamoDB serialization and structured logging
    - Intent model, uniqueness validation, producer, consumer and query service
"""

__version__ = "1.0.0"
