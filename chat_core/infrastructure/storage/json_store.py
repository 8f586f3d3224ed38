import json
import os
import shutil
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from chat_core.config.settings import settings
from chat_core.domain.conversation import Conversation, MessageRecord, MessageRole
from chat_core.domain.exceptions import BusinessError, NotFoundError

# Layout under the storage root:
#   conversations/<id>/meta.json       conversation record
#   conversations/<id>/messages.jsonl  one message per line, append only


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _conversations_root(root: Optional[Path | str]) -> Path:
    path = Path(root or settings.storage_root).resolve() / "conversations"
    path.mkdir(parents=True, exist_ok=True)
    return path


class JsonConversationStore:
    """ConversationStore backed by one directory per conversation."""

    def __init__(self, root: str | Path | None = None):
        self._conv_root = _conversations_root(root)

    async def create(self, user_id: str, title: Optional[str]) -> Conversation:
        cid = f"c-{uuid4().hex}"
        cdir = self._conv_root / cid
        cdir.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        conv = Conversation(id=cid, user_id=user_id, title=title, created_at=now, updated_at=now)
        self._write_meta(cdir, conv)
        return conv

    async def find_unique(self, conversation_id: str, user_id: str) -> Optional[Conversation]:
        conv = self._read_meta(self._conv_root / conversation_id)
        if conv is None or conv.user_id != user_id:
            return None
        return conv

    async def find_many(self, user_id: str) -> List[Conversation]:
        items: List[Conversation] = []
        for cdir in self._conv_root.glob("*/"):
            conv = self._read_meta(cdir)
            if conv is not None and conv.user_id == user_id:
                items.append(conv)
        items.sort(key=lambda c: c.updated_at, reverse=True)
        return items

    async def update(self, conversation_id: str, user_id: str, **fields: Any) -> Conversation:
        conv = await self.find_unique(conversation_id, user_id)
        if conv is None:
            raise NotFoundError.for_resource("Conversation")
        for key in ("title", "updated_at", "meta"):
            if key in fields:
                setattr(conv, key, fields[key])
        if "updated_at" not in fields:
            conv.updated_at = datetime.now(timezone.utc)
        self._write_meta(self._conv_root / conversation_id, conv)
        return conv

    async def delete(self, conversation_id: str, user_id: str) -> None:
        if await self.find_unique(conversation_id, user_id) is None:
            raise NotFoundError.for_resource("Conversation")
        try:
            shutil.rmtree(self._conv_root / conversation_id)
        except OSError as e:
            raise BusinessError(code="STORE_DELETE_ERROR", message=str(e))

    def _read_meta(self, cdir: Path) -> Optional[Conversation]:
        meta_path = cdir / "meta.json"
        if not meta_path.exists():
            return None
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BusinessError(code="STORE_READ_ERROR", message=str(e))
        return Conversation(
            id=data["id"],
            user_id=data["user_id"],
            title=data.get("title"),
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
            meta=data.get("meta") or {},
        )

    def _write_meta(self, cdir: Path, conv: Conversation) -> None:
        meta_path = cdir / "meta.json"
        tmp_path = cdir / f"meta.{uuid4().hex}.json.tmp"
        obj = {
            "id": conv.id,
            "user_id": conv.user_id,
            "title": conv.title,
            "created_at": _iso(conv.created_at),
            "updated_at": _iso(conv.updated_at),
            "meta": conv.meta,
        }
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, meta_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))


class JsonMessageStore:
    """MessageStore appending to the ``messages.jsonl`` of each conversation."""

    def __init__(self, root: str | Path | None = None):
        self._conv_root = _conversations_root(root)

    async def find_many(self, conversation_id: str) -> List[MessageRecord]:
        items = self._read_messages(self._conv_root / conversation_id / "messages.jsonl")
        items.sort(key=lambda m: m.created_at)
        return items

    async def create(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        tokens: Optional[int] = None,
        cost: Optional[float] = None,
    ) -> MessageRecord:
        cdir = self._conv_root / conversation_id
        if not cdir.exists():
            raise NotFoundError.for_resource("Conversation")
        record = MessageRecord(
            id=f"m-{uuid4().hex}",
            conversation_id=conversation_id,
            role=MessageRole(role),
            content=content,
            model=model,
            provider=provider,
            tokens=tokens,
            cost=cost,
            created_at=datetime.now(timezone.utc),
        )
        try:
            with (cdir / "messages.jsonl").open("a", encoding="utf-8") as f:
                f.write(json.dumps(self._to_payload(record), ensure_ascii=False) + "\n")
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
        return record

    async def update(self, message_id: str, **fields: Any) -> MessageRecord:
        for msgs_path in self._conv_root.glob("*/messages.jsonl"):
            records = self._read_messages(msgs_path)
            for record in records:
                if record.id != message_id:
                    continue
                for key in ("content", "model", "provider", "tokens", "cost", "meta"):
                    if key in fields:
                        setattr(record, key, fields[key])
                self._rewrite(msgs_path, records)
                return record
        raise NotFoundError.for_resource("Message")

    def _rewrite(self, msgs_path: Path, records: List[MessageRecord]) -> None:
        tmp_path = msgs_path.with_name(f"messages.{uuid4().hex}.jsonl.tmp")
        lines = [json.dumps(self._to_payload(r), ensure_ascii=False) for r in records]
        try:
            tmp_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
            os.replace(tmp_path, msgs_path)
        except OSError as e:
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    def _read_messages(self, msgs_path: Path) -> List[MessageRecord]:
        items: List[MessageRecord] = []
        if not msgs_path.exists():
            return items
        for line in msgs_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                items.append(self._to_message(json.loads(line)))
            except (json.JSONDecodeError, KeyError, ValueError):
                continue
        return items

    @staticmethod
    def _to_payload(record: MessageRecord) -> Dict[str, Any]:
        payload = asdict(record)
        payload["role"] = record.role.value
        payload["created_at"] = _iso(record.created_at)
        return payload

    @staticmethod
    def _to_message(data: Dict[str, Any]) -> MessageRecord:
        return MessageRecord(
            id=data["id"],
            conversation_id=data["conversation_id"],
            role=MessageRole(data["role"]),
            content=data.get("content") or "",
            model=data.get("model"),
            provider=data.get("provider"),
            tokens=data.get("tokens"),
            cost=data.get("cost"),
            created_at=_parse_dt(data["created_at"]),
            meta=data.get("meta") or {},
        )
