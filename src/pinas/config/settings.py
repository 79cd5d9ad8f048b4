import os

DEFAULT_CATALOG_URL = (
    "https://raw.githubusercontent.com/kameka22/pinas-app-catalog/master/catalog.json"
)


class Config:
    data_directory = os.getenv("PINAS_DATA_DIR", "/storage/.pinas")
    packages_directory = os.getenv("PINAS_PACKAGES_DIR", f"{data_directory}/apps")
    downloads_directory = os.getenv("PINAS_DOWNLOADS_DIR", f"{data_directory}/downloads")
    bin_directory = os.getenv("PINAS_BIN_DIR", f"{data_directory}/bin")

    catalog_url = os.getenv("PINAS_CATALOG_URL", DEFAULT_CATALOG_URL)
    database_url = os.getenv("PINAS_DATABASE_URL", "sqlite:///./data/pinas.db")

    http_timeout_seconds = int(os.getenv("PINAS_HTTP_TIMEOUT_SECONDS", "30"))
    exec_timeout_seconds = int(os.getenv("PINAS_EXEC_TIMEOUT_SECONDS", "30"))
    container_stop_timeout = int(os.getenv("PINAS_CONTAINER_STOP_TIMEOUT", "10"))

    # Comma separated; "*" allows any origin.
    cors_origins = os.getenv("PINAS_CORS_ORIGINS", "*").split(",")

config = Config()
