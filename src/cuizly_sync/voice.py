# src/cuizly_sync/voice.py
from __future__ import annotations

"""
voice.py

Conversation with the Cuizly assistant over edge functions:
  ask(text)    -> cuizly-voice-chat (reply text, keeps history)
  speak(text)  -> cuizly-voice-elevenlabs (mp3 bytes)
  respond(text) chains both
"""

import base64
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from cuizly_sync.auth import SessionProvider
from cuizly_sync.errors import VendorError
from cuizly_sync.functions import EdgeFunctionClient

CHAT_FUNCTION = "cuizly-voice-chat"
TTS_FUNCTION = "cuizly-voice-elevenlabs"
HISTORY_TURNS = 10


@dataclass(frozen=True)
class Turn:
    type: str  # "user" | "assistant"
    content: str

    def to_json(self) -> Dict[str, str]:
        return {"type": self.type, "content": self.content}


class VoiceAssistant:
    def __init__(
        self,
        functions: EdgeFunctionClient,
        sessions: Optional[SessionProvider] = None,
        *,
        voice: str = "Charlie",
        language: str = "fr",
    ) -> None:
        self.functions = functions
        self.sessions = sessions
        self.voice = voice
        self.language = language
        self.history: List[Turn] = []

    async def ask(self, text: str) -> str:
        text = text.strip()
        if not text:
            raise ValueError("Message is required")
        user_id = await self.sessions.current_user_id() if self.sessions is not None else None
        payload = await self.functions.invoke(
            CHAT_FUNCTION,
            {
                "message": text,
                "userId": user_id,
                "conversationHistory": [turn.to_json() for turn in self.history[-HISTORY_TURNS:]],
            },
        )
        reply = (payload or {}).get("response") or (payload or {}).get("message")
        if not reply:
            raise VendorError(200, f"{CHAT_FUNCTION} returned no reply", payload=payload)
        self.history.append(Turn("user", text))
        self.history.append(Turn("assistant", reply))
        return reply

    async def speak(self, text: str) -> bytes:
        payload = await self.functions.invoke(
            TTS_FUNCTION,
            {"text": text, "voice": self.voice, "language": self.language},
        )
        audio = (payload or {}).get("audioContent")
        if not audio:
            raise VendorError(200, f"{TTS_FUNCTION} returned no audio", payload=payload)
        return base64.b64decode(audio)

    async def respond(self, text: str) -> Tuple[str, bytes]:
        reply = await self.ask(text)
        return reply, await self.speak(reply)

    def reset(self) -> None:
        self.history.clear()
