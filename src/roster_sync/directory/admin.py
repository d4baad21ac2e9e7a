import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from ..engine.models import DirectoryAccount, DirectoryDevice, ExternalId, OrgNode
from .client import DirectoryClient

logger = logging.getLogger(__name__)

CUSTOMER = "my_customer"


def account_from_api(user: dict) -> DirectoryAccount:
    name = user.get("name") or {}
    return DirectoryAccount(
        primary_email=user.get("primaryEmail", ""),
        given_name=name.get("givenName", ""),
        family_name=name.get("familyName", ""),
        org_unit_path=user.get("orgUnitPath", ""),
        suspended=bool(user.get("suspended", False)),
        external_ids=[
            ExternalId(
                value=str(e.get("value", "")),
                type=e.get("type", ""),
                custom_type=e.get("customType"),
            )
            for e in user.get("externalIds") or []
        ],
        custom_schemas=user.get("customSchemas") or {},
        id=user.get("id"),
    )


def device_from_api(device: dict) -> DirectoryDevice:
    return DirectoryDevice(
        serial_number=device.get("serialNumber", ""),
        org_unit_path=device.get("orgUnitPath", ""),
        device_id=device.get("deviceId"),
    )


def node_from_api(unit: dict) -> OrgNode:
    return OrgNode(
        name=unit.get("name", ""),
        org_unit_path=unit.get("orgUnitPath", ""),
        parent_org_unit_path=unit.get("parentOrgUnitPath", ""),
    )


class DirectoryService:
    """Users, org units and Chrome OS devices of one Google Workspace domain."""

    PAGE_SIZE = 500

    def __init__(self, client: DirectoryClient, domain: str):
        self._client = client
        self._domain = domain

    def _paginate(self, path: str, params: dict, key: str) -> List[dict]:
        items: List[dict] = []
        token = None
        while True:
            page_params = dict(params, pageToken=token) if token else dict(params)
            data = self._client.get(path, params=page_params).json()
            items.extend(data.get(key) or [])
            token = data.get("nextPageToken")
            if not token:
                return items

    # Accounts

    def list_accounts(self, path_filter: Optional[str] = None) -> List[DirectoryAccount]:
        params = {"domain": self._domain, "maxResults": self.PAGE_SIZE}
        if path_filter:
            params["query"] = f"orgUnitPath='{path_filter}'"
        users = self._paginate("/users", params, "users")
        logger.info(f"Loaded {len(users)} account(s) under {path_filter or self._domain}")
        return [account_from_api(u) for u in users]

    def create_account(self, draft: dict) -> DirectoryAccount:
        logger.info(f"Creating account {draft.get('primaryEmail')}")
        resp = self._client.post("/users", json=draft)
        return account_from_api(resp.json())

    def update_account(self, key: str, partial: dict) -> DirectoryAccount:
        logger.debug(f"Updating account {key}: {sorted(partial)}")
        resp = self._client.put(f"/users/{quote(key)}", json=partial)
        return account_from_api(resp.json())

    def suspend_account(self, key: str) -> DirectoryAccount:
        logger.info(f"Suspending account {key}")
        return self.update_account(key, {"suspended": True})

    def move_account(self, key: str, path: str) -> DirectoryAccount:
        logger.info(f"Moving account {key} to {path}")
        return self.update_account(key, {"orgUnitPath": path})

    # Org units

    def list_org_nodes(self, parent_path: Optional[str] = None) -> List[OrgNode]:
        params = {"type": "all"}
        if parent_path:
            params["orgUnitPath"] = parent_path
        resp = self._client.get(f"/customer/{CUSTOMER}/orgunits", params=params)
        units = resp.json().get("organizationUnits") or []
        return [node_from_api(u) for u in units]

    def create_org_node(self, name: str, parent_path: str) -> OrgNode:
        logger.info(f"Creating org unit '{name}' under {parent_path}")
        resp = self._client.post(
            f"/customer/{CUSTOMER}/orgunits",
            json={"name": name, "parentOrgUnitPath": parent_path},
        )
        return node_from_api(resp.json())

    # Chrome OS devices

    def list_devices(self, query: Optional[str] = None) -> List[DirectoryDevice]:
        params = {"maxResults": 300, "projection": "BASIC"}
        if query:
            params["query"] = query
        devices = self._paginate(f"/customer/{CUSTOMER}/devices/chromeos", params, "chromeosdevices")
        return [device_from_api(d) for d in devices]

    def find_device(self, serial: str) -> Optional[DirectoryDevice]:
        for device in self.list_devices(query=f"id:{serial}"):
            if device.serial_number == serial:
                return device
        return None

    def find_devices(self, serials: Iterable[str]) -> Dict[str, DirectoryDevice]:
        """Look up devices by serial; lookups that fail are logged and left out."""
        found: Dict[str, DirectoryDevice] = {}
        for serial in dict.fromkeys(serials):
            try:
                device = self.find_device(serial)
            except requests.RequestException as e:
                logger.error(f"Failed to look up Chrome device {serial}: {e}")
                continue
            if device is not None:
                found[serial] = device
        logger.info(f"Found {len(found)} of the roster's device(s)")
        return found

    def move_device(self, device_id: str, path: str) -> None:
        logger.info(f"Moving Chrome device {device_id} to {path}")
        self._client.post(
            f"/customer/{CUSTOMER}/devices/chromeos/moveDevicesToOu",
            json={"deviceIds": [device_id]},
            params={"orgUnitPath": path},
        )
