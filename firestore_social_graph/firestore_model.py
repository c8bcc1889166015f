import logging
from typing import (
    TYPE_CHECKING,
    Any,
    AsyncGenerator,
    ClassVar,
    Dict,
    List,
    Optional,
    Tuple,
    Type,
    Union,
)

from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from .enums import BatchOperation, FirestoreOperators, OrderByDirection
from .firestore_fields import FirestoreField
from .pydantic_compat import (
    BaseModel,
    Field,
    PrivateAttr,
    PydanticVersion,
    get_model_config,
    get_model_fields,
    model_dump_compat,
)

if TYPE_CHECKING:
    from .firestore_client import FirestoreDB
    from .subcollection_accessor import SubCollectionAccessor

# Alias for the first element in order-by tuple
FieldType = Union[str, FirestoreField]
# Alias for field ordering tuples
FieldOrderType = Tuple[FieldType, OrderByDirection]
# Filters may be FieldFilter objects or legacy (field, op, value) tuples
FilterType = Union[FieldFilter, Tuple[FieldType, Union[str, FirestoreOperators], Any]]
# A parent is a model instance, a document path, or the id of a top-level parent
ParentType = Union["BaseFirestoreModel", str]

logger = logging.getLogger(__name__)


def _as_field_filter(item: FilterType) -> FieldFilter:
    if isinstance(item, FieldFilter):
        return item
    field_name, op, value = item
    if isinstance(op, FirestoreOperators):
        op = op.value
    return FieldFilter(str(field_name), op, value)


class BaseFirestoreModel(BaseModel):
    """
    Base document model with asynchronous Firestore operations.

    Top-level collections set ``Settings.name``.  Subcollections also set
    ``Settings.parent`` to the owning model, and every operation on them
    needs a parent (model instance, document path, or parent id).
    """

    id: Optional[str] = Field(default=None)

    # Injected by ``initialize_db``; shared per model class.
    _db: ClassVar[Optional["FirestoreDB"]] = None

    # Document path of the owner when this model lives in a subcollection.
    _parent_path: Optional[str] = PrivateAttr(default=None)

    class Settings:
        name: str = "BaseCollection"

    if PydanticVersion >= 2:
        model_config = get_model_config()
    else:
        class Config:
            allow_population_by_field_name = True
            use_enum_values = True
            validate_all = True

    @classmethod
    def initialize_fields(cls) -> None:
        for field_name, field_info in get_model_fields(cls).items():
            alias = (
                FieldPath.document_id() if field_name == "id"
                else (field_info.alias or field_name)  # type: ignore[attr-defined]
            )
            setattr(cls, field_name, FirestoreField(alias))

    @classmethod
    def initialize_db(cls, db: "FirestoreDB"):
        """Inject the FirestoreDB instance to be used for all operations."""
        cls._db = db

    @classmethod
    def _client(cls):
        if not cls._db:
            raise RuntimeError("Database must be initialized before using the model.")
        return cls._db.client

    # --------------------------------------------------------------------------
    # Paths
    # --------------------------------------------------------------------------
    @classmethod
    def get_collection_name(cls) -> str:
        if hasattr(cls, "Settings") and hasattr(cls.Settings, "name"):
            return cls.Settings.name
        return cls.__name__

    @property
    def collection_name(self) -> str:
        return self.get_collection_name()

    @classmethod
    def get_parent_model(cls) -> Optional[Type["BaseFirestoreModel"]]:
        return getattr(getattr(cls, "Settings", None), "parent", None)

    @classmethod
    def _resolve_parent_path(cls, parent: Optional[ParentType]) -> Optional[str]:
        parent_cls = cls.get_parent_model()
        if parent_cls is None:
            return None
        if parent is None:
            raise RuntimeError(
                f"{cls.__name__} is a subcollection and requires a parent "
                f"({parent_cls.__name__})."
            )
        if isinstance(parent, BaseFirestoreModel):
            return parent.document_path
        if "/" in parent:
            return parent
        if parent_cls.get_parent_model() is not None:
            raise ValueError(
                f"A bare id cannot locate nested parent {parent_cls.__name__}; "
                f"pass the parent instance or its document path."
            )
        return f"{parent_cls.get_collection_name()}/{parent}"

    @classmethod
    def _get_collection_path(cls, parent: Optional[ParentType] = None) -> str:
        parent_path = cls._resolve_parent_path(parent)
        if parent_path:
            return f"{parent_path}/{cls.get_collection_name()}"
        return cls.get_collection_name()

    def _own_parent(self, parent: Optional[ParentType]) -> Optional[ParentType]:
        return parent if parent is not None else self._parent_path

    @property
    def document_path(self) -> str:
        if not self.id:
            raise ValueError(f"{type(self).__name__} has no ID yet.")
        return f"{self._get_collection_path(self._parent_path)}/{self.id}"

    @classmethod
    def collection_ref(cls, parent: Optional[ParentType] = None):
        return cls._client().collection(cls._get_collection_path(parent))

    @classmethod
    def document_ref(cls, doc_id: Optional[str] = None, parent: Optional[ParentType] = None):
        collection_ref = cls.collection_ref(parent)
        return collection_ref.document(doc_id) if doc_id else collection_ref.document()

    def bind_parent(self, parent: ParentType) -> "BaseFirestoreModel":
        """Attach this instance to its owner document and return it."""
        self._parent_path = self._resolve_parent_path(parent)
        return self

    def subcollection(self, child_cls: Type["BaseFirestoreModel"]) -> "SubCollectionAccessor":
        from .subcollection_accessor import SubCollectionAccessor

        return SubCollectionAccessor(self, child_cls)

    # --------------------------------------------------------------------------
    # Serialization
    # --------------------------------------------------------------------------
    def to_firestore(self, exclude_none=True, exclude_unset=False, include: Optional[set] = None) -> Dict[str, Any]:
        """Document body keyed by Firestore field names, without the id."""
        return model_dump_compat(
            self,
            exclude={"id"},
            include=include,
            exclude_unset=exclude_unset,
            exclude_none=exclude_none,
            by_alias=True,
        )

    @classmethod
    def from_snapshot(cls, snapshot, parent_path: Optional[str] = None) -> "BaseFirestoreModel":
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        obj = cls(**data)
        obj._parent_path = parent_path
        return obj

    # --------------------------------------------------------------------------
    # CRUD operations: create/update/delete
    # --------------------------------------------------------------------------
    async def save(
        self,
        parent: Optional[ParentType] = None,
        exclude_none=True,
        exclude_unset=True,
    ) -> "BaseFirestoreModel":
        """
        Create the document.  Raises if an explicit ID is already taken.
        """
        parent_path = self._resolve_parent_path(self._own_parent(parent))
        collection_ref = self._client().collection(self._get_collection_path(parent_path))
        data_to_save = self.to_firestore(exclude_none=exclude_none, exclude_unset=exclude_unset)

        if not self.id:
            doc_ref = collection_ref.document()
            self.id = doc_ref.id
        else:
            doc_ref = collection_ref.document(self.id)
            if (await doc_ref.get()).exists:
                raise RuntimeError("Error creating object: provided ID already exists.")

        await doc_ref.set(data_to_save)
        self._parent_path = parent_path
        return self

    async def update(
        self,
        include: Optional[set] = None,
        parent: Optional[ParentType] = None,
        exclude_none=True,
        exclude_unset=True,
    ) -> "BaseFirestoreModel":
        """Update fields on an existing document."""
        if not self.id:
            raise ValueError("Cannot update a document without an ID.")

        doc_ref = self.document_ref(self.id, parent=self._own_parent(parent))
        updates = self.to_firestore(
            exclude_none=exclude_none, exclude_unset=exclude_unset, include=include
        )
        logger.debug(f"Update: {self.collection_name} - id={self.id}, updates={updates}")
        if updates:
            await doc_ref.update(updates)
        return self

    async def delete(self, parent: Optional[ParentType] = None) -> None:
        if not self.id:
            raise ValueError("Cannot delete a document without an ID.")
        await self.document_ref(self.id, parent=self._own_parent(parent)).delete()

    # --------------------------------------------------------------------------
    # Reads
    # --------------------------------------------------------------------------
    @classmethod
    async def get(
        cls,
        doc_id: str,
        parent: Optional[ParentType] = None,
        transaction=None,
    ) -> Optional["BaseFirestoreModel"]:
        """
        Retrieve a document by its ID, optionally as part of a transaction.
        """
        parent_path = cls._resolve_parent_path(parent)
        doc_ref = cls.document_ref(doc_id, parent=parent_path)
        doc_snap = await doc_ref.get(transaction=transaction)
        if doc_snap.exists:
            return cls.from_snapshot(doc_snap, parent_path)
        return None

    @classmethod
    async def exists(
        cls,
        doc_id: str,
        parent: Optional[ParentType] = None,
        transaction=None,
    ) -> bool:
        doc_snap = await cls.document_ref(doc_id, parent=parent).get(transaction=transaction)
        return doc_snap.exists

    @classmethod
    async def count(
        cls,
        filters: Optional[List[FilterType]] = None,
        parent: Optional[ParentType] = None,
    ) -> int:
        """
        Number of documents matching the filters.  Falls back to an empty
        projection when the SDK has no aggregation support.
        """
        query = cls._build_query(filters or [], parent=parent)
        try:
            count_snapshot = await query.count().get()
            return count_snapshot[0][0].value
        except AttributeError:
            logger.warning("Firestore: Performing count by fetching all items with empty select")
            docs = await query.select([]).get()
            return len(docs)

    @classmethod
    async def find(
        cls,
        filters: Optional[List[FilterType]] = None,
        parent: Optional[ParentType] = None,
        projection: Optional[Type[BaseModel]] = None,
        order_by: Optional[
            Union[List[Union[FieldType, FieldOrderType]], Union[FieldType, FieldOrderType]]
        ] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        transaction=None,
    ) -> AsyncGenerator[Union["BaseFirestoreModel", BaseModel], None]:
        """
        Asynchronously yield documents matching ``filters``.
        """
        parent_path = cls._resolve_parent_path(parent)
        query = cls._build_query(filters or [], parent=parent_path, projection=projection)

        if order_by:
            if not isinstance(order_by, list):
                order_by = [order_by]
            for order_by_field in order_by:
                if isinstance(order_by_field, tuple):
                    field, direction = order_by_field
                    query = query.order_by(str(field), direction=str(direction))
                else:
                    query = query.order_by(str(order_by_field))

        if offset is not None:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        async for doc in query.stream(transaction=transaction):
            if projection is None:
                yield cls.from_snapshot(doc, parent_path)
            else:
                data = doc.to_dict() or {}
                data["id"] = doc.id
                yield projection(**data)

    @classmethod
    async def find_one(
        cls,
        filters: Optional[List[FilterType]] = None,
        parent: Optional[ParentType] = None,
        projection: Optional[Type[BaseModel]] = None,
        order_by: Optional[Union[FieldType, FieldOrderType]] = None,
        transaction=None,
    ) -> Optional["BaseFirestoreModel"]:
        async for obj in cls.find(
            filters=filters,
            parent=parent,
            projection=projection,
            order_by=order_by,
            limit=1,
            transaction=transaction,
        ):
            return obj
        return None

    @classmethod
    def _build_query(
        cls,
        filters: List[FilterType],
        parent: Optional[ParentType] = None,
        projection: Optional[Type[BaseModel]] = None,
    ):
        query = cls.collection_ref(parent)

        for item in filters:
            query = query.where(filter=_as_field_filter(item))

        if projection:
            select_fields = list(get_model_fields(projection).keys())
            logger.debug(f"Build Query: select fields: {select_fields}")
            query = query.select(select_fields)

        return query

    # --------------------------------------------------------------------------
    # Batch operations
    # --------------------------------------------------------------------------
    @classmethod
    async def batch_write(
        cls,
        operations: List[Tuple[BatchOperation, "BaseFirestoreModel"]],
        transaction=None,
    ) -> None:
        """
        Apply create/update/delete operations atomically.

        Without ``transaction`` a new write batch is committed.  With one,
        the writes are staged on it and committed when the transaction
        completes.  Subcollection documents use their bound parent.
        """
        writer = transaction if transaction is not None else cls._client().batch()

        for op, model_instance in operations:
            if not model_instance.id and op != BatchOperation.CREATE:
                raise ValueError(f"Cannot {op.value} without an ID assigned on {model_instance}.")

            doc_ref = model_instance.document_ref(
                model_instance.id, parent=model_instance._parent_path
            )

            if op == BatchOperation.CREATE:
                if not model_instance.id:
                    model_instance.id = doc_ref.id
                writer.set(doc_ref, model_instance.to_firestore())
            elif op == BatchOperation.UPDATE:
                writer.update(doc_ref, model_instance.to_firestore())
            elif op == BatchOperation.DELETE:
                writer.delete(doc_ref)

        if transaction is None:
            await writer.commit()


def init_firestore_odm(database: "FirestoreDB", document_models: List[Type[BaseFirestoreModel]]):
    """Bind every model to ``database`` and enable class-level query fields."""
    for model in document_models:
        model.initialize_db(database)
        model.initialize_fields()
