"""Global constants for the railpay service."""

from __future__ import annotations

SERVICE_NAME = "railpay"
REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_ID_CTX_KEY = "request_id"
DEFAULT_ENV_FILE = ".env"
SECRETS_DIR = "/run/secrets"

HOSTED_CHARGE_SIGNATURE_HEADER = "X-CC-Webhook-Signature"
DEFAULT_CDP_SIGNATURE_HEADER = "cdp-webhook-signature"

# USDC contract on Base mainnet.
USDC_BASE_CONTRACT = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
BASE_MAINNET_CHAIN_ID = 8453
USDC_DECIMALS = 6
