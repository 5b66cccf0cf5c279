import os

from dotenv import load_dotenv

load_dotenv()

VERSION = "1.0.0"

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.getcwd(), "public"))

# Provider endpoints
BLOCKSTREAM_API_URL = os.getenv("BLOCKSTREAM_API_URL", "https://blockstream.info/api")
BLOCKCHAIN_INFO_URL = os.getenv("BLOCKCHAIN_INFO_URL", "https://blockchain.info")
BLOCKSCOUT_API_URL = os.getenv("BLOCKSCOUT_API_URL", "https://eth.blockscout.com/api")
SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
KOIOS_API_URL = os.getenv("KOIOS_API_URL", "https://api.koios.rest/api/v1")
COINGECKO_API_URL = os.getenv("COINGECKO_API_URL", "https://api.coingecko.com/api/v3")

# Outbound call policy
PROVIDER_TIMEOUT_SEC = float(os.getenv("PROVIDER_TIMEOUT_SEC", "30"))
PRICE_TIMEOUT_SEC = float(os.getenv("PRICE_TIMEOUT_SEC", "10"))
PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "0"))
PROVIDER_RETRY_BACKOFF_SEC = float(os.getenv("PROVIDER_RETRY_BACKOFF_SEC", "1.0"))

# 0 = unlimited fan-out
MAX_CONCURRENT_RESOLUTIONS = int(os.getenv("MAX_CONCURRENT_RESOLUTIONS", "0"))
