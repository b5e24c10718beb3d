from __future__ import annotations

from typing import Any, Dict, Optional, Union

import requests


class TelegramClient:
    def __init__(self, bot_token: str, chat_id: Union[int, str, None] = None, timeout: float = 20):
        self.bot_token = bot_token.strip()
        self.chat_id = chat_id
        self.timeout = timeout
        self.base = f"https://api.telegram.org/bot{self.bot_token}"
        self.session = requests.Session()

    def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        r = self.session.post(f"{self.base}/{method}", json=payload, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        if not data.get("ok"):
            raise RuntimeError(data)
        return data.get("result")

    def send(
        self,
        text: str,
        chat_id: Union[int, str, None] = None,
        silent: bool = False,
        parse_mode: Optional[str] = None,
        link_preview: bool = False,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Any:
        target = chat_id if chat_id is not None else self.chat_id
        if target is None or target == "":
            raise RuntimeError("No chat_id given and no default chat configured")

        payload: Dict[str, Any] = {
            "chat_id": target,
            "text": text,
            "disable_notification": bool(silent),
            "disable_web_page_preview": not link_preview,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return self._call("sendMessage", payload)

    def answer_callback(self, callback_query_id: str, text: str = "") -> Any:
        payload: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            payload["text"] = text
        return self._call("answerCallbackQuery", payload)
