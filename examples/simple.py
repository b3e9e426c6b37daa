"""Minimal demonstration of a single chat call.

需要环境变量（或 .env）：CHIPP_API_KEY、CHIPP_APP_NAME_ID。
"""

import os

from dotenv import load_dotenv

from chipp_client import ChippClient, ChippConfig, Message, Session

if __name__ == "__main__":
    load_dotenv()
    config = ChippConfig.build(os.getenv("CHIPP_API_KEY"), os.getenv("CHIPP_APP_NAME_ID"))
    with ChippClient(config) as client:
        session = Session()
        result = client.chat(session, [Message.user("你好，请介绍一下自己。")])
        print("Assistant:", result.content)
        print("Session:", session.chat_session_id)
