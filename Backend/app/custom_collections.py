"""
Custom collections: tenant-defined tables with typed fields and
dynamic-map records.

Record data is keyed by field id (as a string). Values are stored as given;
the field type only drives import coercion and display.

Bulk imports take rows that were already parsed from a spreadsheet together
with a header -> field id mapping, coerce the cells and insert the result in
batches inside a single transaction.
"""

import logging
import math
import uuid
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from .core.config import get_settings
from .core.errors import InternalError, InvalidInputError, NotFoundError
from .embeddings import embed_texts, embeddings_enabled
from .models import CustomCollection, CustomField, CustomFieldType, CustomRecord
from .schemas import CreateCollectionInput, CreateFieldInput, CreateRecordInput, RecordRead
from .tenancy import TenantDatabase, require_owned, scoped_select, tenant_filter

logger = logging.getLogger(__name__)
settings = get_settings()

TRUTHY_IMPORT_VALUES = ("true", "si")


# ────────────────────────────────────────────────────────────────
# Collections
# ────────────────────────────────────────────────────────────────

async def list_collections(db: TenantDatabase) -> list[CustomCollection]:
    stmt = scoped_select(CustomCollection, db.organization_id).order_by(CustomCollection.created_at.desc())
    result = await db.session.execute(stmt)
    return list(result.scalars().all())


async def get_collection(db: TenantDatabase, collection_id: uuid.UUID) -> CustomCollection:
    collection = await require_owned(db.session, CustomCollection, collection_id, db.organization_id)
    if not collection:
        raise NotFoundError("Collection not found")
    return collection


async def list_fields(db: TenantDatabase, collection_id: uuid.UUID) -> list[CustomField]:
    """Fields of an owned collection, in field_order."""
    result = await db.session.execute(
        select(CustomField)
        .join(CustomCollection, CustomField.collection_id == CustomCollection.id)
        .where(
            CustomField.collection_id == collection_id,
            tenant_filter(CustomCollection, db.organization_id),
        )
        .order_by(CustomField.field_order, CustomField.created_at)
    )
    return list(result.scalars().all())


async def get_collection_with_fields(
    db: TenantDatabase,
    collection_id: uuid.UUID,
) -> tuple[CustomCollection, list[CustomField]]:
    collection = await get_collection(db, collection_id)
    fields = await list_fields(db, collection.id)
    return collection, fields


async def create_collection(
    db: TenantDatabase,
    data: CreateCollectionInput,
    fields: Sequence[CreateFieldInput] = (),
) -> CustomCollection:
    """
    Create a collection and its initial fields in one transaction.

    Fields get field_order 0..n-1 in the order given.
    """
    session = db.session
    collection = CustomCollection(
        organization_id=db.organization_id,
        name=data.name,
        description=data.description,
        icon=data.icon,
        embedding_field_ids=[],
    )
    session.add(collection)
    await session.flush()

    for order, field in enumerate(fields):
        session.add(
            CustomField(
                collection_id=collection.id,
                name=field.name,
                field_type=field.field_type,
                field_order=order,
                is_required=field.is_required,
                options=dict(field.options),
            )
        )

    await session.commit()
    await session.refresh(collection)

    logger.info(f"Collection created for org {db.ctx.slug}: {collection.name} ({len(fields)} fields)")
    return collection


async def delete_collection(db: TenantDatabase, collection_id: uuid.UUID) -> None:
    """Delete a collection; its fields and records go with it (ON DELETE CASCADE)."""
    collection = await get_collection(db, collection_id)
    await db.session.execute(
        delete(CustomCollection).where(
            CustomCollection.id == collection.id,
            tenant_filter(CustomCollection, db.organization_id),
        )
    )
    await db.session.commit()
    logger.info(f"Collection deleted for org {db.ctx.slug}: {collection_id}")


# ────────────────────────────────────────────────────────────────
# Fields
# ────────────────────────────────────────────────────────────────

async def add_field(db: TenantDatabase, collection_id: uuid.UUID, data: CreateFieldInput) -> CustomField:
    """Append a field; its order is one past the current maximum (0 for the first)."""
    collection = await get_collection(db, collection_id)

    result = await db.session.execute(
        select(func.max(CustomField.field_order)).where(CustomField.collection_id == collection.id)
    )
    current_max = result.scalar_one_or_none()

    field = CustomField(
        collection_id=collection.id,
        name=data.name,
        field_type=data.field_type,
        field_order=0 if current_max is None else current_max + 1,
        is_required=data.is_required,
        options=dict(data.options),
    )
    db.session.add(field)
    await db.session.commit()
    await db.session.refresh(field)
    return field


async def delete_field(db: TenantDatabase, collection_id: uuid.UUID, field_id: uuid.UUID) -> None:
    collection = await get_collection(db, collection_id)

    result = await db.session.execute(
        select(CustomField).where(CustomField.id == field_id, CustomField.collection_id == collection.id)
    )
    field = result.scalar_one_or_none()
    if not field:
        raise NotFoundError("Field not found")

    if str(field.id) in (collection.embedding_field_ids or []):
        collection.embedding_field_ids = [fid for fid in collection.embedding_field_ids if fid != str(field.id)]

    await db.session.delete(field)
    await db.session.commit()


# ────────────────────────────────────────────────────────────────
# Embeddings
# ────────────────────────────────────────────────────────────────

def build_embedding_text(
    embedding_field_ids: Iterable[str],
    fields: Sequence[CustomField],
    data: Mapping[str, Any],
) -> str:
    """
    Concatenate the selected field values as "Name: value" lines.

    Lists are joined with ", ". Unknown fields and empty values are skipped.
    """
    field_map = {str(f.id): f for f in fields}
    parts = []

    for field_id in embedding_field_ids:
        field = field_map.get(field_id)
        value = data.get(field_id)
        if field is None or value is None or value == "":
            continue
        text = ", ".join(str(v) for v in value) if isinstance(value, list) else str(value)
        if text.strip():
            parts.append(f"{field.name}: {text}")

    return "\n".join(parts)


async def _embed_records(
    collection: CustomCollection,
    fields: Sequence[CustomField],
    datas: Sequence[Mapping[str, Any]],
) -> list[Optional[list[float]]]:
    """One embedding (or None) per record data, in order."""
    if not collection.embedding_field_ids or not embeddings_enabled():
        return [None] * len(datas)
    texts = [build_embedding_text(collection.embedding_field_ids, fields, data) for data in datas]
    return await embed_texts(texts)


async def update_embedding_fields(
    db: TenantDatabase,
    collection_id: uuid.UUID,
    field_ids: Sequence[str],
) -> CustomCollection:
    """Choose which fields feed record embeddings. Every id must belong to the collection."""
    collection, fields = await get_collection_with_fields(db, collection_id)
    known = {str(f.id) for f in fields}

    normalized = [str(fid) for fid in field_ids]
    unknown = [fid for fid in normalized if fid not in known]
    if unknown:
        raise InvalidInputError(f"Unknown field(s) for this collection: {', '.join(unknown)}")

    # Keep first occurrence order, drop duplicates
    collection.embedding_field_ids = list(dict.fromkeys(normalized))
    await db.session.commit()
    await db.session.refresh(collection)
    return collection


async def regenerate_embeddings(db: TenantDatabase, collection_id: uuid.UUID) -> dict[str, int]:
    """Recompute embeddings for every record of a collection. Returns {"updated": n}."""
    collection, fields = await get_collection_with_fields(db, collection_id)
    records = await list_records(db, collection.id)
    if not records:
        return {"updated": 0}

    embeddings = await _embed_records(collection, fields, [r.data for r in records])
    updated = 0
    for record, embedding in zip(records, embeddings):
        if embedding is not None:
            record.embedding = embedding
            updated += 1

    await db.session.commit()
    logger.info(f"Regenerated {updated} embedding(s) for collection {collection.id}")
    return {"updated": updated}


# ────────────────────────────────────────────────────────────────
# Records
# ────────────────────────────────────────────────────────────────

async def list_records(db: TenantDatabase, collection_id: uuid.UUID) -> list[CustomRecord]:
    collection = await get_collection(db, collection_id)
    result = await db.session.execute(
        select(CustomRecord)
        .where(CustomRecord.collection_id == collection.id)
        .order_by(CustomRecord.created_at.desc())
    )
    return list(result.scalars().all())


async def _get_record(db: TenantDatabase, collection: CustomCollection, record_id: uuid.UUID) -> CustomRecord:
    result = await db.session.execute(
        select(CustomRecord).where(CustomRecord.id == record_id, CustomRecord.collection_id == collection.id)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Record not found")
    return record


async def create_record(db: TenantDatabase, collection_id: uuid.UUID, data: CreateRecordInput) -> CustomRecord:
    collection, fields = await get_collection_with_fields(db, collection_id)
    [embedding] = await _embed_records(collection, fields, [data.data])

    record = CustomRecord(collection_id=collection.id, data=dict(data.data), embedding=embedding)
    db.session.add(record)
    await db.session.commit()
    await db.session.refresh(record)
    return record


async def update_record(
    db: TenantDatabase,
    collection_id: uuid.UUID,
    record_id: uuid.UUID,
    data: Mapping[str, Any],
) -> CustomRecord:
    collection, fields = await get_collection_with_fields(db, collection_id)
    record = await _get_record(db, collection, record_id)

    [embedding] = await _embed_records(collection, fields, [data])
    record.data = dict(data)
    if embedding is not None:
        record.embedding = embedding

    await db.session.commit()
    await db.session.refresh(record)
    return record


async def delete_record(db: TenantDatabase, collection_id: uuid.UUID, record_id: uuid.UUID) -> None:
    collection = await get_collection(db, collection_id)
    record = await _get_record(db, collection, record_id)
    await db.session.delete(record)
    await db.session.commit()


def resolve_record_fields(records: Sequence[CustomRecord], fields: Sequence[CustomField]) -> list[RecordRead]:
    """Replace field-id keys with field names. Keys without a matching field are kept as-is."""
    names = {str(f.id): f.name for f in fields}
    return [
        RecordRead(
            id=record.id,
            data={names.get(key, key): value for key, value in (record.data or {}).items()},
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        for record in records
    ]


# ────────────────────────────────────────────────────────────────
# Bulk import
# ────────────────────────────────────────────────────────────────

def coerce_import_value(field_type: CustomFieldType, raw: Any) -> Any:
    """
    Convert a spreadsheet cell to the value stored for a field type.

    number:  numeric value, or 0 when the cell is not a number
    boolean: True for "true"/"si" (any case) or "1", else False
    other:   the cell unchanged
    """
    if field_type == CustomFieldType.NUMBER:
        if isinstance(raw, bool):
            return int(raw)
        if isinstance(raw, (int, float)):
            number = raw
        else:
            try:
                number = float(str(raw).strip())
            except ValueError:
                return 0
        if not math.isfinite(number):
            return 0
        if isinstance(number, float) and number.is_integer():
            return int(number)
        return number

    if field_type == CustomFieldType.BOOLEAN:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip()
        return text.lower() in TRUTHY_IMPORT_VALUES or text == "1"

    return raw


def build_import_records(
    rows: Iterable[Mapping[str, Any]],
    mapping: Mapping[str, str],
    fields: Sequence[CustomField],
) -> list[dict[str, Any]]:
    """
    Turn parsed rows into record data keyed by field id.

    Args:
        rows: one mapping of column header -> cell per row
        mapping: column header -> field id; columns not listed are dropped
        fields: the collection's fields

    Empty cells are left out of the record.
    """
    field_map = {str(f.id): f for f in fields}
    records = []

    for row in rows:
        record: dict[str, Any] = {}
        for header, field_id in mapping.items():
            field = field_map.get(str(field_id))
            raw = row.get(header)
            if field is None or raw is None or raw == "":
                continue
            record[str(field.id)] = coerce_import_value(field.field_type, raw)
        records.append(record)

    return records


async def bulk_import_records(
    db: TenantDatabase,
    collection_id: uuid.UUID,
    records: Sequence[Mapping[str, Any]],
) -> dict[str, int]:
    """
    Insert many records into a collection.

    Rows are flushed in batches of IMPORT_BATCH_SIZE within one transaction,
    so a failure leaves no partial import behind.

    Returns:
        {"imported": number of records written}
    """
    if not records:
        raise InvalidInputError("No records to import")

    session = db.session
    collection, fields = await get_collection_with_fields(db, collection_id)
    embeddings = await _embed_records(collection, fields, records)
    batch_size = max(1, settings.import_batch_size)

    imported = 0
    try:
        for i in range(0, len(records), batch_size):
            batch = records[i:i + batch_size]
            session.add_all(
                CustomRecord(collection_id=collection.id, data=dict(data), embedding=embedding)
                for data, embedding in zip(batch, embeddings[i:i + batch_size])
            )
            await session.flush()
            imported += len(batch)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Import into collection {collection_id} failed after {imported} row(s): {e}")
        raise InternalError("Import failed; no records were imported") from e

    logger.info(f"Imported {imported} record(s) into collection {collection.id} for org {db.ctx.slug}")
    return {"imported": imported}


async def import_rows(
    db: TenantDatabase,
    collection_id: uuid.UUID,
    rows: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, str],
) -> dict[str, int]:
    """Coerce parsed spreadsheet rows with a column mapping and bulk import them."""
    if not mapping:
        raise InvalidInputError("Map at least one column to a field")
    fields = await list_fields(db, (await get_collection(db, collection_id)).id)
    records = build_import_records(rows, mapping, fields)
    return await bulk_import_records(db, collection_id, records)
