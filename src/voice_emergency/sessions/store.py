"""
Session registry, session store and audit event log.

The registry maps active session ids to their live state and is the only
structure shared across session tasks; every access goes through a short
asyncio.Lock critical section. The store holds session records (active and
ended) until the retention sweeper deletes them.
"""

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Protocol

import aiofiles

from voice_emergency.sessions.models import TranscriptionRecord
from voice_emergency.sessions.models import VoiceSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Lock-guarded map of active sessions plus a per-user index."""

    def __init__(self):
        self._sessions: dict[str, VoiceSession] = {}
        self._user_sessions: dict[str, list[str]] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: VoiceSession) -> None:
        async with self._lock:
            self._sessions[session.id] = session
            self._user_sessions.setdefault(session.user_id, []).append(session.id)

    async def get(self, session_id: str) -> Optional[VoiceSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> Optional[VoiceSession]:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is not None:
                ids = self._user_sessions.get(session.user_id, [])
                if session_id in ids:
                    ids.remove(session_id)
                if not ids:
                    self._user_sessions.pop(session.user_id, None)
            return session

    async def session_ids(self) -> list[str]:
        async with self._lock:
            return list(self._sessions)

    async def user_session_ids(self, user_id: str) -> list[str]:
        async with self._lock:
            return list(self._user_sessions.get(user_id, []))

    def __len__(self) -> int:
        return len(self._sessions)


class SessionStore(Protocol):
    """Persistence for session records, transcripts and audio payloads."""

    async def save(self, session: VoiceSession) -> None: ...

    async def get(self, session_id: str) -> Optional[VoiceSession]: ...

    async def delete(self, session_id: str) -> bool: ...

    async def session_ids(self) -> list[str]: ...

    async def append_transcriptions(self, session_id: str, records: list[TranscriptionRecord]) -> None: ...

    async def get_transcriptions(self, session_id: str) -> list[TranscriptionRecord]: ...

    async def append_audio(self, session_id: str, data: bytes) -> None: ...

    async def get_audio(self, session_id: str) -> list[bytes]: ...

    async def purge_audio(self, session_id: str) -> None: ...

    async def purge_transcriptions(self, session_id: str) -> None: ...


class InMemorySessionStore:
    """Process-local SessionStore."""

    def __init__(self):
        self._sessions: dict[str, VoiceSession] = {}
        self._transcriptions: dict[str, list[TranscriptionRecord]] = {}
        self._audio: dict[str, list[bytes]] = {}
        self._lock = asyncio.Lock()

    async def save(self, session: VoiceSession) -> None:
        async with self._lock:
            self._sessions[session.id] = session

    async def get(self, session_id: str) -> Optional[VoiceSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def delete(self, session_id: str) -> bool:
        async with self._lock:
            self._transcriptions.pop(session_id, None)
            self._audio.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    async def session_ids(self) -> list[str]:
        async with self._lock:
            return list(self._sessions)

    async def append_transcriptions(self, session_id: str, records: list[TranscriptionRecord]) -> None:
        async with self._lock:
            self._transcriptions.setdefault(session_id, []).extend(records)

    async def get_transcriptions(self, session_id: str) -> list[TranscriptionRecord]:
        async with self._lock:
            return list(self._transcriptions.get(session_id, []))

    async def append_audio(self, session_id: str, data: bytes) -> None:
        async with self._lock:
            self._audio.setdefault(session_id, []).append(data)

    async def get_audio(self, session_id: str) -> list[bytes]:
        async with self._lock:
            return list(self._audio.get(session_id, []))

    async def purge_audio(self, session_id: str) -> None:
        async with self._lock:
            self._audio.pop(session_id, None)

    async def purge_transcriptions(self, session_id: str) -> None:
        async with self._lock:
            self._transcriptions.pop(session_id, None)


class EventLog(Protocol):
    """Append-only audit trail."""

    async def append(self, action: str, session_id: str, **details: Any) -> None: ...


def _audit_entry(action: str, session_id: str, details: dict[str, Any]) -> dict[str, Any]:
    return {
        "action": action,
        "session_id": session_id,
        "logged_at": datetime.now().astimezone().isoformat(),
        **details,
    }


class InMemoryEventLog:
    """EventLog kept in a list, mainly for tests and single-process use."""

    def __init__(self):
        self.entries: list[dict[str, Any]] = []

    async def append(self, action: str, session_id: str, **details: Any) -> None:
        self.entries.append(_audit_entry(action, session_id, details))

    def actions(self, session_id: Optional[str] = None) -> list[str]:
        return [e["action"] for e in self.entries if session_id is None or e["session_id"] == session_id]


class FileEventLog:
    """EventLog appending JSON lines to a file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    async def append(self, action: str, session_id: str, **details: Any) -> None:
        line = json.dumps(_audit_entry(action, session_id, details), default=str)
        async with self._lock:
            async with aiofiles.open(self.path, mode="a", encoding="utf-8") as f:
                await f.write(line + "\n")
