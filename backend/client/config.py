import os


class ClientSettings:
    def __init__(self) -> None:
        self.api_base_url = os.getenv("POS_API_BASE_URL", "http://localhost:8000").strip().rstrip("/")
        # Local key-value cache; one sqlite file per device.
        self.cache_db = os.getenv("POS_CACHE_DB", "").strip() or os.path.expanduser("~/.pos-cache.sqlite")
        self.store_name = os.getenv("POS_STORE_NAME", "").strip() or "SHREEJI'S STORE"
        try:
            self.http_timeout_s = float(os.getenv("POS_HTTP_TIMEOUT_S", "25") or 25)
        except ValueError:
            self.http_timeout_s = 25.0


client_settings = ClientSettings()
