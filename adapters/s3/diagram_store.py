from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, cast

import orjson
from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.exceptions import BotoCoreError, ClientError  # type: ignore[import-untyped]
from botocore.response import StreamingBody  # type: ignore[import-untyped]
from pydantic import ValidationError

from adapters.filesystem.json_utils import dump_json_bytes
from adapters.s3.s3_client import client_from_settings
from domain.errors import DiagramNotFound, StoreUnavailable
from domain.ids import new_unique_id
from domain.models import DEFAULT_DIAGRAM_NAME, Block, Diagram, DiagramSummary
from domain.ports.repositories import DiagramStore

logger = logging.getLogger(__name__)

DIAGRAM_SUFFIX = ".json"
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3DiagramStore(DiagramStore):
    """One JSON object per diagram at ``<prefix><diagram_id>.json``."""

    def __init__(self, client: BaseClient, bucket: str, prefix: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = self._normalize_prefix(prefix)

    @classmethod
    def from_settings(cls, settings: Any) -> S3DiagramStore:
        return cls(client_from_settings(settings), settings.bucket, settings.prefix)

    def list(self) -> Sequence[DiagramSummary]:
        summaries: list[DiagramSummary] = []
        for key in self._iter_keys():
            payload = self._load_raw(key)
            summaries.append(
                DiagramSummary(id=self._id_from_key(key), name=str(payload.get("name", "")))
            )
        return summaries

    def get(self, diagram_id: str) -> Diagram:
        key = self.build_key(diagram_id)
        payload = self._load_raw(key)
        try:
            return Diagram.model_validate({**payload, "id": diagram_id})
        except ValidationError as exc:
            raise StoreUnavailable(f"Stored diagram {key} is invalid: {exc}") from exc

    def create(self, name: str, blocks: Sequence[Block]) -> Diagram:
        taken = {self._id_from_key(key) for key in self._iter_keys()}
        diagram = Diagram(
            id=new_unique_id("d", taken),
            name=name or DEFAULT_DIAGRAM_NAME,
            blocks=list(blocks),
        )
        self._put(diagram)
        logger.info("Created diagram %s in s3://%s/%s", diagram.id, self._bucket, self._prefix)
        return diagram

    def update(self, diagram_id: str, diagram: Diagram) -> Diagram:
        stored = diagram.model_copy(update={"id": diagram_id})
        self._ensure_exists(diagram_id)
        self._put(stored)
        return stored

    def remove(self, diagram_id: str) -> None:
        self._ensure_exists(diagram_id)
        key = self.build_key(diagram_id)
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Cannot delete s3://{self._bucket}/{key}: {exc}") from exc
        logger.info("Removed diagram %s from s3://%s", diagram_id, self._bucket)

    def build_key(self, diagram_id: str) -> str:
        return f"{self._prefix}{diagram_id}{DIAGRAM_SUFFIX}"

    def _ensure_exists(self, diagram_id: str) -> None:
        key = self.build_key(diagram_id)
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise DiagramNotFound(diagram_id) from exc
            raise StoreUnavailable(f"Cannot stat s3://{self._bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Cannot stat s3://{self._bucket}/{key}: {exc}") from exc

    def _put(self, diagram: Diagram) -> None:
        key = self.build_key(diagram.id)
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=dump_json_bytes(diagram.to_payload()),
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as exc:
            raise StoreUnavailable(f"Cannot write s3://{self._bucket}/{key}: {exc}") from exc

    def _iter_keys(self) -> Iterable[str]:
        token: str | None = None
        while True:
            payload: dict[str, Any] = {"Bucket": self._bucket, "Prefix": self._prefix}
            if token:
                payload["ContinuationToken"] = token
            try:
                response = self._client.list_objects_v2(**payload)
            except (ClientError, BotoCoreError) as exc:
                raise StoreUnavailable(f"Cannot list s3://{self._bucket}: {exc}") from exc
            for entry in response.get("Contents", []) or []:
                key = entry.get("Key")
                if key and key.endswith(DIAGRAM_SUFFIX):
                    yield key
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")

    def _load_raw(self, key: str) -> dict[str, Any]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise DiagramNotFound(self._id_from_key(key)) from exc
            raise StoreUnavailable(f"Cannot read s3://{self._bucket}/{key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreUnavailable(f"Cannot read s3://{self._bucket}/{key}: {exc}") from exc
        try:
            content = orjson.loads(self._read_body(response.get("Body")))
        except ValueError as exc:
            raise StoreUnavailable(f"Corrupt diagram object {key}: {exc}") from exc
        return content if isinstance(content, dict) else {}

    def _read_body(self, body: Any) -> bytes:
        if isinstance(body, bytes | bytearray):
            return bytes(body)
        if isinstance(body, StreamingBody):
            return cast(bytes, body.read())
        if hasattr(body, "read"):
            return cast(bytes, body.read())
        return b""

    def _id_from_key(self, key: str) -> str:
        name = key[len(self._prefix) :] if key.startswith(self._prefix) else key
        return name[: -len(DIAGRAM_SUFFIX)] if name.endswith(DIAGRAM_SUFFIX) else name

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in _MISSING_CODES

    @staticmethod
    def _normalize_prefix(prefix: str) -> str:
        normalized = prefix.lstrip("/")
        if normalized in {".", "./"}:
            return ""
        if normalized and not normalized.endswith("/"):
            normalized = f"{normalized}/"
        return normalized
