import os
from typing import List

class Settings:
    def _split_csv(self, raw: str, *, default: List[str]) -> List[str]:
        parts = [p.strip() for p in (raw or "").split(",")]
        return [p for p in parts if p] or default

    def __init__(self) -> None:
        self.env = os.getenv('APP_ENV', 'local')
        # Published CSV exports of the spreadsheet tabs.
        self.store_products_url = os.getenv("STORE_PRODUCTS", "").strip()
        self.customers_url = os.getenv("CUSTOMERS_URL", "").strip()
        self.customers_orders_url = os.getenv("CUSTOMERS_ORDERS", "").strip()
        # Apps Script web app that performs every write.
        self.sheets_webhook_url = os.getenv("SHEETS_WEBHOOK_URL", "").strip()
        # Plain text or a bcrypt hash ("$2...").
        self.store_password = os.getenv("PASSWORD", "")
        # The POS is served from arbitrary origins (desktop, phone, kiosk).
        self.cors_origins = self._split_csv(os.getenv("CORS_ORIGINS", "").strip(), default=["*"])
        try:
            self.upstream_timeout_s = float(os.getenv("UPSTREAM_TIMEOUT_S", "25") or 25)
        except ValueError:
            self.upstream_timeout_s = 25.0
        self.api_version = os.getenv("APP_VERSION", "0.1.0").strip() or "0.1.0"

settings = Settings()
