"""Deletion reconciler.

Finds mappings whose side-A record stopped syncing and decides that the
side-B counterpart must be removed.  Side A is authoritative for
existence, so a mapping is a candidate once its A id is absent from the
currently eligible A ids.  A direct fetch then tells the two cases apart:

* ``GONE`` -- the fetch reports not found.  What counts as not found is
  up to the remote: ``NotionClient.retrieve_page`` reports archived and
  trashed pages as missing, so for Notion those are ``GONE`` as well.  A
  remote that returns such records instead leaves them to the eligibility
  predicate, which makes them ``INELIGIBLE``;
* ``INELIGIBLE`` -- the record still exists but fails the predicate (for
  instance its due date was cleared).

Both lead to the same outcome (delete the counterpart, drop the mapping);
the reason is only logged and reported.  A fetch that shows the record is
eligible after all (listed late) keeps the mapping.
"""

from __future__ import annotations

import logging
from typing import Mapping

from taskbridge.core.errors import TransientNetworkError
from taskbridge.sync.adapters import EligibilityPredicate
from taskbridge.sync.models import RemovalCandidate, RemovalReason, Side
from taskbridge.sync.remotes import TaskRemote
from taskbridge.sync.state import MappingStore

logger = logging.getLogger(__name__)


class DeletionReconciler:
    """Detect mapped records removed from the authoritative side.

    Args:
        remote_a: Side A remote, used for fetch-by-id verification.
        eligible_a: Side A eligibility predicate.
    """

    def __init__(
        self, remote_a: TaskRemote, eligible_a: EligibilityPredicate
    ) -> None:
        self.remote_a = remote_a
        self.eligible_a = eligible_a

    def find_removed(
        self,
        store: MappingStore,
        eligible_ids_by_side: Mapping[Side, set[str]],
        titles: Mapping[str, str] | None = None,
    ) -> list[RemovalCandidate]:
        """Return the deletion candidates among *store*'s mappings.

        Args:
            store: Mapping store as of the end of the execute states.
            eligible_ids_by_side: Ids currently eligible on each side.
            titles: Known titles keyed by remote id, for reporting.

        Returns:
            Candidates, each naming the side to delete from.
        """
        titles = titles or {}
        eligible_a = eligible_ids_by_side.get(Side.A, set())
        eligible_b = eligible_ids_by_side.get(Side.B, set())
        candidates: list[RemovalCandidate] = []

        for mapping in store:
            if mapping.a_id is None:
                # Row only known on B; it goes once B stops syncing it.
                if mapping.b_id not in eligible_b:
                    candidates.append(
                        RemovalCandidate(
                            local_key=mapping.local_key,
                            side_to_delete_from=Side.A,
                            reason=RemovalReason.GONE,
                            title=titles.get(mapping.b_id or ""),
                        )
                    )
                continue

            if mapping.a_id in eligible_a:
                continue

            try:
                record = self.remote_a.get_record_by_id(mapping.a_id)
            except TransientNetworkError as exc:
                logger.warning(
                    "Cannot verify %s record %s, keeping mapping %s: %s",
                    self.remote_a.name,
                    mapping.a_id,
                    mapping.local_key,
                    exc.message,
                )
                continue

            if record is None:
                reason = RemovalReason.GONE
                title = titles.get(mapping.a_id) or titles.get(
                    mapping.b_id or ""
                )
            elif self.eligible_a(record):
                logger.debug(
                    "%s record %s is eligible on direct fetch; keeping %s",
                    self.remote_a.name,
                    mapping.a_id,
                    mapping.local_key,
                )
                continue
            else:
                reason = RemovalReason.INELIGIBLE
                title = self.remote_a.to_snapshot(record).title

            logger.info(
                "Mapping %s: %s record %s is %s; counterpart %s will be removed",
                mapping.local_key,
                self.remote_a.name,
                mapping.a_id,
                "gone" if reason is RemovalReason.GONE else "no longer eligible",
                mapping.b_id,
            )
            candidates.append(
                RemovalCandidate(
                    local_key=mapping.local_key,
                    side_to_delete_from=Side.B,
                    remote_id=mapping.b_id,
                    reason=reason,
                    title=title,
                )
            )
        return candidates
