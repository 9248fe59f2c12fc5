import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    """Runtime configuration shared by the app, auth and routes."""

    admin_password_hash: str
    jwt_secret: str
    client_origin: str = "http://localhost:5173"
    environment: str = "development"
    static_dir: str = "client/dist"
    token_expire_days: int = 7
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            admin_password_hash=os.getenv("ADMIN_PASSWORD", ""),
            jwt_secret=os.getenv("JWT_SECRET", ""),
            client_origin=os.getenv("CLIENT_ORIGIN", "http://localhost:5173"),
            environment=os.getenv("APP_ENV", "development"),
            static_dir=os.getenv("STATIC_DIR", "client/dist"),
            token_expire_days=int(os.getenv("TOKEN_EXPIRE_DAYS", "7")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        if not self.admin_password_hash or not self.jwt_secret:
            raise RuntimeError("ADMIN_PASSWORD and JWT_SECRET must be set in .env")
