"""Session continuity: the assistant remembers context across calls."""

import os

from dotenv import load_dotenv

from chipp_client import ChippClient, ChippConfig, Message, Session

if __name__ == "__main__":
    load_dotenv()
    config = ChippConfig.build(os.getenv("CHIPP_API_KEY"), os.getenv("CHIPP_APP_NAME_ID"))
    with ChippClient(config) as client:
        session = Session()
        for question in [
            "Remember this number: 42",
            "What number did I tell you to remember?",
            "What's that number multiplied by 2?",
        ]:
            print("User:", question)
            print("Assistant:", client.chat_text(session, [Message.user(question)]))
            print("Session:", session.chat_session_id)

        # 清空令牌后开始新对话，助手不再记得 42
        session.reset()
        print("Assistant:", client.chat_text(session, [Message.user("What number did I tell you?")]))
