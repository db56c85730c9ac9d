"""
zkb-ingest Constants

Endpoints and identifiers shared by the event sources and the ESI fetcher.
"""

# =============================================================================
# ESI Configuration
# =============================================================================

ESI_BASE_URL = "https://esi.evetech.net/latest"
ESI_KILLMAIL_PATH = "/killmails/{kill_id}/{hash}/"

# =============================================================================
# zKillboard Endpoints
# =============================================================================

# RedisQ endpoint (moved to zkillredisq.stream in May 2025)
REDISQ_URL = "https://zkillredisq.stream/listen.php"

# Daily kill id -> hash listing, one file per day (YYYYMMDD)
ZKB_HISTORY_URL = "https://zkillboard.com/api/history/{day}.json"

# =============================================================================
# Killmail Identity
# =============================================================================

# CCP killmail hashes are SHA-1 digests, hex encoded
KILLMAIL_HASH_BYTES = 20

USER_AGENT = "zkb-ingest/1.0 (killmail archive)"
