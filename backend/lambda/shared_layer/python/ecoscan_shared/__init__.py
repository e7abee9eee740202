"""ecoscan_shared — Shared utilities for EcoScan Lambda functions.

Provides:
    - Environment configuration
    - Cognito JWT authentication (bearer header or cookie)
    - DynamoDB client singleton
    - HTTP response helpers with CORS
    - DynamoDB serialization/deserialization
    - Point-operation stores for bins, status history, locations, QR codes
"""

__version__ = "1.0.0"
