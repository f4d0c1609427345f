"""Apply a connector's records to the canonical customer store."""

import logging

from retention_sync.models import MergeOutcome, SyncFailure, SyncResult
from retention_sync.repositories.base import CustomerStore

logger = logging.getLogger(__name__)


async def merge_records(result: SyncResult, store: CustomerStore) -> SyncResult:
    """Create-or-update every record of ``result`` and count the outcomes.
    
    Nothing is deleted: a record missing from an incremental fetch may just
    be unchanged. A repeated external id within one run is skipped, and a
    store failure is counted against that record only. Returns a new
    result with the records dropped.
    """
    created = updated = skipped = 0
    failed = result.failed
    failures = list(result.failures)
    seen = set()
    
    for record in result.records:
        if record.external_id in seen:
            skipped += 1
            continue
        seen.add(record.external_id)
        
        try:
            outcome = await store.create_or_update(record)
        except Exception as e:
            logger.error(
                f"Failed to store record {record.external_id} "
                f"for integration {result.integration_id}: {e}"
            )
            failed += 1
            failures.append(SyncFailure(
                external_id=record.external_id,
                reason=f"could not store record: {type(e).__name__}",
            ))
            continue
        
        if outcome == MergeOutcome.CREATED:
            created += 1
        elif outcome == MergeOutcome.UPDATED:
            updated += 1
        else:
            skipped += 1
    
    return result.model_copy(update={
        "created": created,
        "updated": updated,
        "skipped": skipped,
        "failed": failed,
        "failures": failures,
        "success": result.success and failed == result.failed,
        "records": [],
    })
