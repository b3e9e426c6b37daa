"""Show how each error type surfaces to the caller."""

import os

from dotenv import load_dotenv

from chipp_client import (
    ApiError,
    ChippClient,
    ChippConfig,
    ConfigError,
    Message,
    RetriesExhaustedError,
    Session,
    TransportError,
)
from chipp_client.infrastructure.logging.logger import setup_logger

if __name__ == "__main__":
    load_dotenv()
    setup_logger("logs")

    try:
        ChippConfig.build("", "myapp")
    except ConfigError as e:
        print("Config error:", e.code, e.extra.get("field"))

    config = ChippConfig.build(
        os.getenv("CHIPP_API_KEY"),
        os.getenv("CHIPP_APP_NAME_ID"),
        max_retries=2,
        initial_retry_delay=0.2,
    )
    with ChippClient(config) as client:
        try:
            print("Ping: %.0f ms" % (client.ping() * 1000))
            print(client.chat_text(Session(), [Message.user("Hello!")]))
        except RetriesExhaustedError as e:
            print(f"Gave up after {e.attempts} attempts: {e.last_error}")
        except ApiError as e:
            print(f"API error {e.status}: {e.message}")
        except TransportError as e:
            print("Network problem:", e.message)
