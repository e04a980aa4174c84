"""
Fingerprint index: address -> couples, stored one document per address.

Reads are not a snapshot across addresses. ``get_couples`` issues one query
per batch of addresses while other workers may still be appending, so a
result can mix buckets from before and after a concurrent write. Within a
single bucket the couples always appear in append order.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Sequence

from pymongo.errors import PyMongoError
from tqdm import tqdm

from .config import FINGERPRINTS_COLLECTION, LOOKUP_BATCH_SIZE
from .db import DocumentStore
from .errors import FingerprintIndexError, InvalidParametersError, StoreError
from .models import Couple, check_uint32, decode_bucket

log = logging.getLogger("songstore.fingerprints")


def _as_couple(value) -> Couple:
    # plain (anchor_time_ms, song_id) tuples are accepted too
    if isinstance(value, Couple):
        return value
    try:
        anchor_time_ms, song_id = value
    except (TypeError, ValueError):
        raise InvalidParametersError(f"expected a Couple or (anchor_time_ms, song_id) pair, got {value!r}") from None
    return Couple(anchor_time_ms, song_id)


class FingerprintIndex:

    def __init__(self, store: DocumentStore, collection: str = FINGERPRINTS_COLLECTION,
                 batch_size: int = LOOKUP_BATCH_SIZE):
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.store = store
        self.collection_name = collection
        self.batch_size = batch_size

    @property
    def _collection(self):
        return self.store.collection(self.collection_name)

    def store_fingerprints(self, fingerprints: Mapping[int, Sequence[Couple]], progress: bool = False) -> int:
        """
        Append couples to their address buckets, creating missing buckets.

        Each address is a single upsert with ``$push``, so concurrent writers
        to the same address never lose each other's couples. Processing stops
        at the first failing address; addresses already written stay written.

        Args:
            fingerprints: Mapping of address -> couples to append
            progress: Show a tqdm progress bar

        Returns:
            Number of couples written
        """
        # validate everything before the first write
        pending = []
        for address, couples in fingerprints.items():
            address = check_uint32("address", address)
            docs = [_as_couple(c).to_document() for c in couples]
            if docs:
                pending.append((address, docs))

        collection = self._collection
        written = 0

        for address, docs in tqdm(pending, desc="Storing fingerprints", unit="addr", disable=not progress):
            try:
                collection.update_one(
                    {"_id": address},
                    {"$push": {"couples": {"$each": docs}}},
                    upsert=True,
                )
            except PyMongoError as e:
                log.error(f"Upsert failed for address {address} after {written} couples: {e}")
                raise FingerprintIndexError(
                    f"error upserting fingerprints for address {address}: {e}", address=address
                ) from e
            written += len(docs)

        log.debug(f"Stored {written} couples across {len(pending)} addresses")
        return written

    def get_couples(self, addresses: Iterable[int]) -> Dict[int, List[Couple]]:
        """
        Fetch the couples stored under each address.

        Addresses with no bucket are left out of the result. A bucket that
        does not decode raises ``CorruptRecordError`` for the whole call.
        """
        wanted = list(dict.fromkeys(check_uint32("address", a) for a in addresses))
        collection = self._collection
        result: Dict[int, List[Couple]] = {}

        for start in range(0, len(wanted), self.batch_size):
            batch = wanted[start:start + self.batch_size]
            try:
                docs = list(collection.find({"_id": {"$in": batch}}))
            except PyMongoError as e:
                raise FingerprintIndexError(
                    f"error retrieving fingerprints for {len(batch)} addresses starting at {batch[0]}: {e}",
                    address=batch[0],
                ) from e

            for doc in docs:
                address = doc.get("_id")
                result[address] = decode_bucket(address, doc)

        return result

    def drop_all(self) -> None:
        try:
            self.store.drop_collection(self.collection_name)
        except StoreError as e:
            raise FingerprintIndexError(str(e)) from e
