from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from database import get_db, now_utc, oid
from responses import success
from schemas import PHONE_PATTERN, PINCODE_PATTERN, SavedAddress
from security import get_current_user

router = APIRouter(prefix="/api/addresses", tags=["addresses"])


class AddressUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    address: Optional[str] = Field(None, min_length=5, max_length=200)
    city: Optional[str] = Field(None, min_length=2, max_length=50)
    state: Optional[str] = Field(None, min_length=2, max_length=50)
    pincode: Optional[str] = Field(None, pattern=PINCODE_PATTERN)
    country: Optional[str] = Field(None, min_length=2, max_length=50)
    is_default: Optional[bool] = None


def _find(addresses: List[Dict[str, Any]], address_id: str) -> Dict[str, Any]:
    target = oid(address_id)
    for a in addresses:
        if a.get("_id") == target:
            return a
    raise HTTPException(404, "Address not found")


def _save(db: Database, user: Dict[str, Any], addresses: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    db["users"].update_one({"_id": user["_id"]}, {"$set": {"addresses": addresses, "updated_at": now_utc()}})
    return addresses


@router.get("")
def list_addresses(user: Dict[str, Any] = Depends(get_current_user)):
    return success(user.get("addresses", []), "Addresses fetched successfully")


@router.post("", status_code=201)
def add_address(body: SavedAddress, user: Dict[str, Any] = Depends(get_current_user),
                db: Database = Depends(get_db)):
    addresses = list(user.get("addresses", []))
    address = {"_id": ObjectId(), **body.model_dump()}
    if address["is_default"] or not addresses:
        for a in addresses:
            a["is_default"] = False
        address["is_default"] = True
    addresses.append(address)
    return success(_save(db, user, addresses), "Address added successfully")


@router.put("/{address_id}")
def update_address(address_id: str, body: AddressUpdate, user: Dict[str, Any] = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    addresses = list(user.get("addresses", []))
    address = _find(addresses, address_id)
    updates = body.model_dump(exclude_none=True)
    if updates.pop("is_default", None) is True:
        for a in addresses:
            a["is_default"] = False
        address["is_default"] = True
    address.update(updates)
    return success(_save(db, user, addresses), "Address updated successfully")


@router.delete("/{address_id}")
def delete_address(address_id: str, user: Dict[str, Any] = Depends(get_current_user),
                   db: Database = Depends(get_db)):
    addresses = list(user.get("addresses", []))
    address = _find(addresses, address_id)
    addresses.remove(address)
    if address.get("is_default") and addresses:
        addresses[0]["is_default"] = True
    return success(_save(db, user, addresses), "Address removed successfully")


@router.patch("/{address_id}/default")
def set_default_address(address_id: str, user: Dict[str, Any] = Depends(get_current_user),
                        db: Database = Depends(get_db)):
    addresses = list(user.get("addresses", []))
    address = _find(addresses, address_id)
    for a in addresses:
        a["is_default"] = False
    address["is_default"] = True
    return success(_save(db, user, addresses), "Default address set successfully")
