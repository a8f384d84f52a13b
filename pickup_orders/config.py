import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # API
    API_TOKEN: str = os.getenv("API_TOKEN", "")
    ORDER_SERVICE_URL: str = os.getenv("ORDER_SERVICE_URL", "http://localhost:8081")
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "10"))

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    KAFKA_CLIENT_ID: str = os.getenv("KAFKA_CLIENT_ID", "pickup-orders")
    COMMAND_TOPIC: str = os.getenv("COMMAND_TOPIC", "orders.commands.update-status")
    ORDER_EVENTS_TOPIC: str = os.getenv("ORDER_EVENTS_TOPIC", "orders.order-events")
    RECONNECT_DELAY: float = float(os.getenv("RECONNECT_DELAY", "5"))

    # Orders
    ESTIMATED_PREP_MINUTES: int = int(os.getenv("ESTIMATED_PREP_MINUTES", "25"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def API_BASE_URL(self) -> str:
        """Base URL of the REST API"""
        return f"{self.ORDER_SERVICE_URL.rstrip('/')}/api"


settings = Settings()
