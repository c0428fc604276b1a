"""Per-resource-type descriptors.

Every resource the core exposes is described by one `ResourceDescriptor`:
where to list/create/update/delete it, how to derive a stable identity from a
raw record, and which fields a create request may carry. The cache, the
pagination controller and the mutation dispatcher are generic over this
configuration; there are no per-resource subclasses.
"""
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from dashcache.core.exceptions.exceptions import InvalidStateError

Record = Mapping[str, Any]


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)


def id_identity(record: Record) -> str:
    return str(record['id'])


def unspent_output_identity(record: Record) -> str:
    # older cores do not return an output id; fall back to its outpoint
    if record.get('id'):
        return str(record['id'])
    return f"{record['transaction_id']}-{record['position']}"


def balance_identity(record: Record) -> str:
    digest = hashlib.sha256(_canonical(record.get('sum_by') or {}).encode()).hexdigest()
    return f"balance:{digest[:32]}"


def mockhsm_key_identity(record: Record) -> str:
    return str(record['xpub'])


def authorization_grant_identity(record: Record) -> str:
    payload = _canonical(record['guard_data']) + str(record['policy'])
    return hashlib.sha256(payload.encode()).hexdigest()


def id_delete_body(identity: str, record: Optional[Record]) -> Dict[str, Any]:
    return {'id': identity}


def authorization_grant_delete_body(identity: str, record: Optional[Record]) -> Dict[str, Any]:
    if record is None:
        raise InvalidStateError(
            f"authorization grant {identity} is not in the item store; "
            "its guard data and policy are needed to delete it"
        )
    return {
        'guard_type': record['guard_type'],
        'guard_data': record['guard_data'],
        'policy': record['policy'],
    }


@dataclass(frozen=True)
class ResourceDescriptor:
    name: str
    list_path: str
    identity: Callable[[Record], str] = id_identity
    create_path: Optional[str] = None
    update_path: Optional[str] = None
    delete_path: Optional[str] = None
    fields: FrozenSet[str] = field(default_factory=frozenset)
    # batch endpoints take and return a list, one element per request
    batch: bool = False
    delete_body: Callable[[str, Optional[Record]], Dict[str, Any]] = id_delete_body
    lookup_filter: Optional[str] = 'id=$1'
    autocomplete_fields: Tuple[str, ...] = ()

    @property
    def can_create(self) -> bool:
        return self.create_path is not None

    @property
    def can_update(self) -> bool:
        return self.update_path is not None

    @property
    def can_delete(self) -> bool:
        return self.delete_path is not None


RESOURCES: Dict[str, ResourceDescriptor] = {
    d.name: d for d in (
        ResourceDescriptor(
            name='account',
            list_path='/list-accounts',
            create_path='/create-account',
            update_path='/update-account-tags',
            fields=frozenset({'alias', 'root_xpubs', 'quorum', 'tags'}),
            batch=True,
            autocomplete_fields=('alias',),
        ),
        ResourceDescriptor(
            name='asset',
            list_path='/list-assets',
            create_path='/create-asset',
            update_path='/update-asset-tags',
            fields=frozenset({'alias', 'root_xpubs', 'quorum', 'tags', 'definition'}),
            batch=True,
            autocomplete_fields=('alias',),
        ),
        ResourceDescriptor(
            name='transaction',
            list_path='/list-transactions',
            autocomplete_fields=('reference_data.type',),
        ),
        ResourceDescriptor(
            name='balance',
            list_path='/list-balances',
            identity=balance_identity,
            lookup_filter=None,
        ),
        ResourceDescriptor(
            name='unspent_output',
            list_path='/list-unspent-outputs',
            identity=unspent_output_identity,
            autocomplete_fields=('account_alias', 'asset_alias'),
        ),
        ResourceDescriptor(
            name='mockhsm_key',
            list_path='/mockhsm/list-keys',
            identity=mockhsm_key_identity,
            create_path='/mockhsm/create-key',
            fields=frozenset({'alias'}),
            lookup_filter=None,
            autocomplete_fields=('alias',),
        ),
        ResourceDescriptor(
            name='access_token',
            list_path='/list-access-tokens',
            create_path='/create-access-token',
            delete_path='/delete-access-token',
            fields=frozenset({'id', 'type'}),
        ),
        ResourceDescriptor(
            name='authorization_grant',
            list_path='/list-authorization-grants',
            identity=authorization_grant_identity,
            create_path='/create-authorization-grant',
            delete_path='/delete-authorization-grant',
            fields=frozenset({'guard_type', 'guard_data', 'policy'}),
            delete_body=authorization_grant_delete_body,
            lookup_filter=None,
        ),
        ResourceDescriptor(
            name='transaction_feed',
            list_path='/list-transaction-feeds',
            create_path='/create-transaction-feed',
            update_path='/update-transaction-feed',
            delete_path='/delete-transaction-feed',
            fields=frozenset({'alias', 'filter'}),
            autocomplete_fields=('alias',),
        ),
    )
}


def get_descriptor(resource_type: str) -> ResourceDescriptor:
    try:
        return RESOURCES[resource_type]
    except KeyError:
        raise InvalidStateError(f"unknown resource type '{resource_type}'") from None
