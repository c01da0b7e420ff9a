from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from plantasy.api.deps import get_document_store
from plantasy.core.security import Identity, get_identity
from plantasy.domain.addresses import AddressBook
from plantasy.domain.orders import DeliveryAddress
from plantasy.persistence.documents import DocumentStore

router = APIRouter(prefix="/addresses", tags=["addresses"])


class SaveAddressRequest(DeliveryAddress):
    is_default: bool = False


def get_address_book(store: DocumentStore = Depends(get_document_store)) -> AddressBook:
    return AddressBook(store)


@router.get("")
def list_addresses(identity: Identity = Depends(get_identity), book: AddressBook = Depends(get_address_book)):
    addresses = book.list_addresses(identity.uid)
    return {"count": len(addresses), "addresses": [address.to_document() for address in addresses]}


@router.post("")
def save_address(
    request: SaveAddressRequest,
    identity: Identity = Depends(get_identity),
    book: AddressBook = Depends(get_address_book),
):
    saved = book.add(identity.uid, request, make_default=request.is_default)
    return saved.to_document()


@router.post("/{address_id}/default")
def set_default_address(
    address_id: str,
    identity: Identity = Depends(get_identity),
    book: AddressBook = Depends(get_address_book),
):
    return book.set_default(identity.uid, address_id).to_document()


@router.delete("/{address_id}")
def delete_address(
    address_id: str,
    identity: Identity = Depends(get_identity),
    book: AddressBook = Depends(get_address_book),
):
    if not book.delete(identity.uid, address_id):
        raise HTTPException(status_code=404, detail=f"address {address_id} not found")
    return {"status": "deleted", "addressId": address_id}
