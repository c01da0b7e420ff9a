from __future__ import annotations

import logging
import random

from pydantic import Field

from plantasy.core.timeutil import now_utc, to_iso
from plantasy.domain.base import Timestamp
from plantasy.domain.orders import DeliveryAddress
from plantasy.persistence.documents import DocumentNotFoundError, DocumentStore

logger = logging.getLogger(__name__)

# Flat stand-in for the per-user ``users/{uid}/addresses`` subcollection.
ADDRESSES = "user_addresses"
USERS = "users"

_rng = random.SystemRandom()


def generate_address_id(rng: random.Random | None = None) -> str:
    return f"ADD{(rng or _rng).randint(0, 99_999_999):08d}"


class SavedAddress(DeliveryAddress):
    id: str
    uid: str
    is_default: bool = False
    created_at: Timestamp = Field(default_factory=now_utc)
    updated_at: Timestamp = Field(default_factory=now_utc)

    def delivery_address(self) -> DeliveryAddress:
        return DeliveryAddress.model_validate(self.model_dump(include=set(DeliveryAddress.model_fields)))


class AddressBook:
    """A customer's saved delivery addresses; at most one is the default.

    The default's id is mirrored onto ``users/{uid}.address``.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self, doc_id: str, data: dict) -> SavedAddress:
        return SavedAddress.from_document({**data, "id": doc_id})

    def list_addresses(self, uid: str) -> list[SavedAddress]:
        snapshots = self.store.query(ADDRESSES, where=[("uid", "==", uid)], order_by="createdAt")
        return [self._load(snap.id, snap.data) for snap in snapshots]

    def get(self, uid: str, address_id: str) -> SavedAddress | None:
        data = self.store.get(ADDRESSES, address_id)
        if data is None or data.get("uid") != uid:
            return None
        return self._load(address_id, data)

    def require(self, uid: str, address_id: str) -> SavedAddress:
        saved = self.get(uid, address_id)
        if saved is None:
            raise DocumentNotFoundError(f"address {address_id} not found")
        return saved

    def default(self, uid: str) -> SavedAddress | None:
        for snap in self.store.query(ADDRESSES, where=[("uid", "==", uid), ("isDefault", "==", True)], limit=1):
            return self._load(snap.id, snap.data)
        return None

    def add(self, uid: str, address: DeliveryAddress, make_default: bool = False) -> SavedAddress:
        address_id = generate_address_id()
        while self.store.exists(ADDRESSES, address_id):
            address_id = generate_address_id()

        # The first saved address becomes the default.
        make_default = make_default or self.default(uid) is None
        if make_default:
            self._clear_default(uid)
        fields = address.model_dump(include=set(DeliveryAddress.model_fields))
        saved = SavedAddress(**fields, id=address_id, uid=uid, is_default=make_default)
        document = saved.to_document()
        document.pop("id")
        self.store.create(ADDRESSES, address_id, document)
        if make_default:
            self._mirror_default(uid, address_id)
        logger.info("address saved: uid=%s address_id=%s default=%s", uid, address_id, make_default)
        return saved

    def set_default(self, uid: str, address_id: str) -> SavedAddress:
        saved = self.require(uid, address_id)
        if saved.is_default:
            return saved
        self._clear_default(uid)
        self.store.update(ADDRESSES, address_id, {"isDefault": True, "updatedAt": to_iso(now_utc())})
        self._mirror_default(uid, address_id)
        return self.require(uid, address_id)

    def delete(self, uid: str, address_id: str) -> bool:
        saved = self.get(uid, address_id)
        if saved is None:
            return False
        self.store.delete(ADDRESSES, address_id)
        if saved.is_default:
            self._mirror_default(uid, "")
        return True

    def _clear_default(self, uid: str) -> None:
        stamp = to_iso(now_utc())
        for snap in self.store.query(ADDRESSES, where=[("uid", "==", uid), ("isDefault", "==", True)]):
            self.store.update(ADDRESSES, snap.id, {"isDefault": False, "updatedAt": stamp})

    def _mirror_default(self, uid: str, address_id: str) -> None:
        self.store.set(USERS, uid, {"address": address_id, "updatedAt": to_iso(now_utc())}, merge=True)
