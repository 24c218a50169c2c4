# Venture FinSight - Financial statements & consolidation engine for venture portfolios
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Intercompany transfer normalization, deduplication and mirroring.

Intercompany transfers are ledger rows of type ``intercompany_transfer``
(or its alias ``intercompany``) moving cash between two companies owned by
the same user. Legacy rows only describe the direction and the
counterparty in free text, so this module provides:

1) Direction resolution
   - ``resolve_direction`` uses the structured ``direction`` field when it
     is set, and otherwise falls back to keyword matching over the
     description and the category (``infer_direction``).
   - Rows whose direction cannot be determined are reported as
     ``unresolved`` and left untouched. They are never guessed.

2) Normalization (``normalize_transfers``)
   - outflow => negative amount, category ``transfer_out``,
   - inflow  => positive amount, category ``transfer_in``,
   - the structured ``direction`` (and the counterparty, when it can be
     resolved against the portfolio) are back-filled so that later runs no
     longer depend on text inference.
   Running it on already normalized rows is a no-op.

3) Deduplication (``find_duplicate_transfers``)
   Rows sharing (date, type, category, amount, description) are
   duplicates; all but the first in (date, id) order are returned for
   deletion. This function only *plans*: deleting is an explicit
   maintenance operation (see ``services.cleanup_intercompany_duplicates``)
   and never happens during statement calculation.

4) Mirroring (``plan_mirrors``)
   For each outflow without a matching inflow in the target company, one
   inflow is planned in the target, tagged ``[AUTO MIRROR <source id>]``.
   The tag makes later runs skip the source: at most one mirror is ever
   created per source outflow.

All functions here are pure; persistence is handled by ``db.py``.
"""

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Literal, Optional

from .models import Company, Transaction, normalize_category

logger = logging.getLogger(__name__)

InferredDirection = Literal["outflow", "inflow", "unknown"]

OUTFLOW_PHRASES: tuple[str, ...] = (
    "outflow",
    "transfer out",
    "transfer to",
    "from chk",
    "to chk",
    "payment to",
    "paid to",
    "sent to",
    "wire to",
)
INFLOW_PHRASES: tuple[str, ...] = (
    "inflow",
    "transfer in",
    "transfer from",
    "payment from",
    "received from",
    "wire from",
)

TRANSFER_OUT = "transfer_out"
TRANSFER_IN = "transfer_in"

MIRROR_TAG_RE = re.compile(r"\[AUTO MIRROR ([^\]]+)\]")


# ---------------------------------------------------------------------------
# Direction
# ---------------------------------------------------------------------------


def infer_direction(description: Optional[str], category: Optional[str]) -> InferredDirection:
    """Infer a transfer direction from free text.

    Returns 'unknown' when no keyword matches or when both directions match.
    """
    desc = str(description or "").lower()
    cat = str(category or "").lower()

    has_outflow = (
        any(phrase in desc for phrase in OUTFLOW_PHRASES)
        or ("transfer" in desc and " to " in desc)
        or TRANSFER_OUT in cat
    )
    has_inflow = (
        any(phrase in desc for phrase in INFLOW_PHRASES)
        or ("transfer" in desc and " from " in desc)
        or TRANSFER_IN in cat
    )

    if has_outflow and not has_inflow:
        return "outflow"
    if has_inflow and not has_outflow:
        return "inflow"
    return "unknown"


def resolve_direction(tx: Transaction) -> InferredDirection:
    """Structured direction if present, otherwise inferred from text."""
    if tx.direction in ("outflow", "inflow"):
        return tx.direction  # type: ignore[return-value]
    return infer_direction(tx.description, tx.category)


# ---------------------------------------------------------------------------
# Counterparty
# ---------------------------------------------------------------------------


def normalize_company_name(name: Optional[str]) -> str:
    """Lowercase a company name, drop legal suffixes and punctuation."""
    text = str(name or "").lower()
    text = re.sub(r"\b(llc|inc|ltd)\b", "", text)
    text = re.sub(r"[^a-z0-9\s]", "", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def extract_counterparty_name(description: Optional[str], direction: str = "outflow") -> str:
    """Extract the counterparty company name from a transfer description.

    Outflows name their target after 'to', inflows their source after
    'from'. Recognized shapes, by priority:

    - bracket notes: '... [Wire to Beta LLC]' (the last one wins),
    - a name right before a bracket: '...; Beta LLC [ref 42]',
    - a generic '... to Beta LLC; ...'.
    """
    text = MIRROR_TAG_RE.sub("", str(description or "")).strip()
    word = "from" if direction == "inflow" else "to"

    bracket = re.findall(rf"\[[^\]]*?\b{word}\s+([^\]]+)\]", text, flags=re.IGNORECASE)
    if bracket:
        return bracket[-1].strip()

    before_bracket = re.search(r";\s*([^;\[]+)\s*\[", text)
    if before_bracket:
        return before_bracket.group(1).strip()

    generic = re.search(rf"\b{word}\s+(.+?)(?:;|\[|$)", text, flags=re.IGNORECASE)
    if generic:
        return generic.group(1).strip()
    return ""


def companies_by_name(companies: Iterable[Company]) -> dict[str, Company]:
    """Index companies by normalized name."""
    return {normalize_company_name(c.name): c for c in companies}


def resolve_counterparty(
    tx: Transaction,
    by_name: Mapping[str, Company],
    direction: Optional[str] = None,
) -> Optional[str]:
    """Return the counterparty company id of a transfer, if it can be resolved."""
    if tx.counterparty_company_id:
        return tx.counterparty_company_id

    direction = direction or resolve_direction(tx)
    if direction == "unknown":
        return None

    name = normalize_company_name(extract_counterparty_name(tx.description, direction))
    company = by_name.get(name) if name else None
    if company is None or company.id == tx.company_id:
        return None
    return company.id


def mirror_tag(source_id: str) -> str:
    return f"[AUTO MIRROR {source_id}]"


def mirrored_source_id(tx: Transaction) -> Optional[str]:
    """Return the source outflow id if the transaction is an auto mirror."""
    match = MIRROR_TAG_RE.search(tx.description or "")
    return match.group(1).strip() if match else None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferChange:
    """A normalization applied to one transfer."""

    before: Transaction
    after: Transaction
    direction: str


@dataclass(frozen=True)
class NormalizationReport:
    """
    Outcome of a normalization pass.

    Attributes
    ----------
    processed :
        Number of intercompany transfers examined.
    changes :
        Transfers whose amount, category or structured fields changed.
    skipped :
        Number of transfers already normalized.
    unresolved :
        Transfers whose direction could not be determined (left untouched).
    """

    processed: int
    changes: tuple[TransferChange, ...]
    skipped: int
    unresolved: tuple[Transaction, ...]

    @property
    def updated(self) -> int:
        return len(self.changes)


def normalize_transfer(
    tx: Transaction,
    direction: str,
    counterparty_company_id: Optional[str] = None,
) -> Transaction:
    """Return the normalized version of a transfer for a known direction."""
    if direction == "outflow":
        amount = -abs(tx.amount)
        category = TRANSFER_OUT
    elif direction == "inflow":
        amount = abs(tx.amount)
        category = TRANSFER_IN
    else:
        raise ValueError(f"Cannot normalize a transfer with direction {direction!r}")

    return replace(
        tx,
        amount=amount,
        category=category,
        direction=direction,
        counterparty_company_id=tx.counterparty_company_id or counterparty_company_id,
    )


def normalize_transfers(
    transactions: Iterable[Transaction],
    companies: Optional[Sequence[Company]] = None,
) -> NormalizationReport:
    """Normalize sign, category and structured fields of intercompany transfers.

    Non-intercompany rows are ignored. When ``companies`` is given, the
    counterparty company id is back-filled from the description where it
    can be resolved.
    """
    by_name = companies_by_name(companies or [])
    transfers = sorted(
        (t for t in transactions if t.is_intercompany), key=lambda t: (t.date, t.id)
    )

    changes: list[TransferChange] = []
    unresolved: list[Transaction] = []
    skipped = 0

    for tx in transfers:
        direction = resolve_direction(tx)
        if direction == "unknown":
            unresolved.append(tx)
            continue

        counterparty = resolve_counterparty(tx, by_name, direction) if by_name else None
        normalized = normalize_transfer(tx, direction, counterparty)
        if normalized == tx:
            skipped += 1
            continue
        changes.append(TransferChange(before=tx, after=normalized, direction=direction))

    if unresolved:
        logger.warning(
            "%d intercompany transfer(s) with unknown direction left untouched",
            len(unresolved),
        )

    return NormalizationReport(
        processed=len(transfers),
        changes=tuple(changes),
        skipped=skipped,
        unresolved=tuple(unresolved),
    )


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


def duplicate_key(tx: Transaction) -> tuple:
    """Composite key identifying duplicate intercompany rows."""
    return (
        tx.date,
        tx.normalized_type,
        normalize_category(tx.category),
        tx.amount,
        (tx.description or "").strip(),
    )


def find_duplicate_transfers(transactions: Iterable[Transaction]) -> list[str]:
    """Return the ids of duplicate intercompany rows, keeping the first of each.

    Rows are visited in (date, id) order, so the surviving row is the
    earliest one with the smallest id.
    """
    seen: set[tuple] = set()
    duplicates: list[str] = []
    transfers = sorted(
        (t for t in transactions if t.is_intercompany), key=lambda t: (t.date, t.id)
    )
    for tx in transfers:
        key = duplicate_key(tx)
        if key in seen:
            duplicates.append(tx.id)
            continue
        seen.add(key)
    return duplicates


# ---------------------------------------------------------------------------
# Mirroring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MissingTarget:
    """An outflow whose target company could not be resolved."""

    source_id: str
    description: str


@dataclass(frozen=True)
class MirrorPlan:
    """
    Mirrored inflows to create for a portfolio.

    Attributes
    ----------
    outflows_processed :
        Number of intercompany outflows examined.
    created :
        New inflow transactions to insert (one per source outflow).
    skipped :
        Ids of outflows already mirrored or already matched by an inflow.
    missing_targets :
        Outflows whose target company could not be resolved.
    """

    outflows_processed: int
    created: tuple[Transaction, ...]
    skipped: tuple[str, ...]
    missing_targets: tuple[MissingTarget, ...]


def build_mirror(source: Transaction, target_company_id: str, source_name: str) -> Transaction:
    """Build the inflow mirroring an outflow into the target company."""
    return Transaction(
        id=f"mirror-{source.id}",
        company_id=target_company_id,
        date=source.date,
        type="intercompany_transfer",
        category=TRANSFER_IN,
        amount=abs(source.amount),
        description=f"Intercompany transfer from {source_name} {mirror_tag(source.id)}",
        affects_pl=False,
        affects_cash_flow=True,
        affects_balance=True,
        counterparty_company_id=source.company_id,
        direction="inflow",
    )


def plan_mirrors(
    companies: Sequence[Company], transactions: Iterable[Transaction]
) -> MirrorPlan:
    """Plan one mirrored inflow per unmatched intercompany outflow.

    An outflow is skipped when:
    - a transaction tagged as its mirror already exists, or
    - the target company already holds an unconsumed inflow of the same
      date and magnitude whose counterparty is unknown or is the source.
    """
    by_id = {c.id: c for c in companies}
    by_name = companies_by_name(companies)

    transfers = sorted(
        (t for t in transactions if t.is_intercompany),
        key=lambda t: (t.date, t.company_id, t.id),
    )
    mirrored = {sid for sid in (mirrored_source_id(t) for t in transfers) if sid}

    # Manual inflows that may already match an outflow, consumed at most once.
    open_inflows = [
        t for t in transfers if t.amount > 0 and mirrored_source_id(t) is None
    ]
    outflows = [t for t in transfers if t.amount < 0]

    created: list[Transaction] = []
    skipped: list[str] = []
    missing: list[MissingTarget] = []

    for tx in outflows:
        if tx.id in mirrored:
            skipped.append(tx.id)
            continue

        target_id = resolve_counterparty(tx, by_name, "outflow")
        if target_id is None or target_id not in by_id or target_id == tx.company_id:
            missing.append(MissingTarget(source_id=tx.id, description=tx.description))
            continue

        match = next(
            (
                inflow
                for inflow in open_inflows
                if inflow.company_id == target_id
                and inflow.date == tx.date
                and inflow.amount == -tx.amount
                and inflow.counterparty_company_id in (None, tx.company_id)
            ),
            None,
        )
        if match is not None:
            open_inflows.remove(match)
            skipped.append(tx.id)
            continue

        source = by_id.get(tx.company_id)
        source_name = source.name if source is not None else "Unknown"
        created.append(build_mirror(tx, target_id, source_name))

    logger.info(
        "Mirror plan: %d outflow(s), %d to create, %d skipped, %d missing target(s)",
        len(outflows),
        len(created),
        len(skipped),
        len(missing),
    )

    return MirrorPlan(
        outflows_processed=len(outflows),
        created=tuple(created),
        skipped=tuple(skipped),
        missing_targets=tuple(missing),
    )
