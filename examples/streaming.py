"""Print a streamed reply fragment by fragment."""

import os

from dotenv import load_dotenv

from chipp_client import ChippClient, ChippConfig, Message, Session, StreamError

if __name__ == "__main__":
    load_dotenv()
    config = ChippConfig.build(os.getenv("CHIPP_API_KEY"), os.getenv("CHIPP_APP_NAME_ID"))
    with ChippClient(config) as client:
        session = Session()
        with client.chat_stream(session, [Message.user("Tell me a short story")]) as stream:
            try:
                for fragment in stream:
                    print(fragment, end="", flush=True)
            except StreamError as e:
                print(f"\n[stream error] {e}")
        print()
        print("Session:", session.chat_session_id)
