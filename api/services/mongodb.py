# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer with owner-scoped operations and connection pooling.
"""

import os
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any, Iterable, Tuple
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    DuplicateKeyError
)
from bson import ObjectId
from bson.errors import InvalidId

logger = logging.getLogger(__name__)

USERS = "users"
LICENSE_KEYS = "license_keys"
SERVICES = "services"
BUNDLES = "service_bundles"
ASSISTANCE_REQUESTS = "assistance_requests"
AUDIT_LOGS = "audit_logs"
UPLOADS = "uploads"


class DuplicateDocumentError(ValueError):
    """Raised when an insert or update violates a unique index."""
    pass


class PaginationResult:
    """Result container for paginated queries."""

    def __init__(self, items: List[Dict], total: int, page: int, page_size: int):
        self.items = items
        self.total = total
        self.page = page
        self.page_size = page_size
        self.total_pages = (total + page_size - 1) // page_size
        self.has_next = page < self.total_pages
        self.has_prev = page > 1


class MongoDBService:
    """MongoDB service with owner-scoped operations and connection pooling."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/sewa_directory_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'sewa_directory_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                self._client = None
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _validate_object_id(self, doc_id: Any) -> ObjectId:
        """Validate and convert string ID to ObjectId."""
        if isinstance(doc_id, ObjectId):
            return doc_id
        try:
            return ObjectId(doc_id)
        except (InvalidId, TypeError):
            raise ValueError(f"Invalid ObjectId format: {doc_id}")

    def _build_id_query(self, doc_id: Any, owner_id: Optional[str] = None) -> Dict:
        """Build an ID query, optionally scoped to the owning account."""
        query = {"_id": self._validate_object_id(doc_id)}
        if owner_id is not None:
            query["userId"] = self._validate_object_id(owner_id)
        return query

    def _add_timestamps(self, document: Dict, is_update: bool = False) -> Dict:
        """Add creation and update timestamps to document."""
        now = datetime.utcnow()

        if not is_update:
            document.setdefault("createdAt", now)

        document["updatedAt"] = now
        return document

    # CRUD Operations

    def create(self, collection: str, document: Dict) -> str:
        """Insert a new document and return its ID."""
        try:
            document = self._add_timestamps(document)

            if "_id" not in document:
                document["_id"] = ObjectId()

            result = self.get_collection(collection).insert_one(document)

            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error in {collection}: {e}")
            raise DuplicateDocumentError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise

    def create_many(self, collection: str, documents: List[Dict]) -> List[str]:
        """Insert several documents in one round trip."""
        try:
            for document in documents:
                self._add_timestamps(document)
                document.setdefault("_id", ObjectId())

            result = self.get_collection(collection).insert_many(documents)

            logger.info(f"Created {len(result.inserted_ids)} documents in {collection}")
            return [str(doc_id) for doc_id in result.inserted_ids]

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error in {collection}: {e}")
            raise DuplicateDocumentError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to create documents in {collection}: {e}")
            raise

    def find_one(self, collection: str, filters: Dict, projection: Dict = None) -> Optional[Dict]:
        """Find a single document matching a filter."""
        try:
            return self.get_collection(collection).find_one(filters, projection)
        except Exception as e:
            logger.error(f"Failed to find document in {collection}: {e}")
            raise

    def find_by_id(self, collection: str, doc_id: Any, owner_id: Optional[str] = None,
                   projection: Dict = None) -> Optional[Dict]:
        """Find a document by ID, optionally requiring a given owner."""
        try:
            query = self._build_id_query(doc_id, owner_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            document = self.get_collection(collection).find_one(query, projection)
            if document is None:
                logger.debug(f"Document {doc_id} not found in {collection}")
            return document
        except Exception as e:
            logger.error(f"Failed to find document {doc_id} in {collection}: {e}")
            raise

    def find(self, collection: str, filters: Dict = None, projection: Dict = None,
             sort: List[Tuple[str, int]] = None, limit: int = 0) -> List[Dict]:
        """Find documents with optional sorting and limit."""
        try:
            cursor = self.get_collection(collection).find(filters or {}, projection)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)

            documents = list(cursor)
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents

        except Exception as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise

    def find_by_ids(self, collection: str, doc_ids: Iterable[Any], projection: Dict = None) -> List[Dict]:
        """Find all documents whose ID is in the given list; invalid IDs match nothing."""
        object_ids = []
        for doc_id in doc_ids:
            try:
                object_ids.append(self._validate_object_id(doc_id))
            except ValueError:
                logger.debug(f"Skipping invalid document ID {doc_id}")

        if not object_ids:
            return []
        return self.find(collection, {"_id": {"$in": object_ids}}, projection)

    def update_by_id(self, collection: str, doc_id: Any, updates: Dict,
                     owner_id: Optional[str] = None) -> Optional[Dict]:
        """Apply ``$set`` updates to a document and return the updated document."""
        try:
            query = self._build_id_query(doc_id, owner_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        try:
            updates = self._add_timestamps(dict(updates), is_update=True)
            document = self.get_collection(collection).find_one_and_update(
                query,
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )

            if document is not None:
                logger.info(f"Updated document {doc_id} in {collection}")
            else:
                logger.warning(f"No document updated for {doc_id} in {collection}")
            return document

        except DuplicateKeyError as e:
            logger.warning(f"Duplicate key error in {collection}: {e}")
            raise DuplicateDocumentError("Document with this identifier already exists")
        except Exception as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise

    def compare_and_set(self, collection: str, doc_id: Any, expected: Dict, updates: Dict) -> Optional[Dict]:
        """
        Atomically update a document only if its fields still hold the expected values.

        Args:
            collection: Collection name
            doc_id: Document identifier
            expected: Field values the document must still have
            updates: Field values to ``$set`` when it does

        Returns:
            The updated document, or None if the document changed or vanished
        """
        query = {**expected, "_id": self._validate_object_id(doc_id)}
        updates = self._add_timestamps(dict(updates), is_update=True)

        try:
            return self.get_collection(collection).find_one_and_update(
                query,
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        except Exception as e:
            logger.error(f"Compare-and-set failed for {doc_id} in {collection}: {e}")
            raise

    def delete_by_id(self, collection: str, doc_id: Any, owner_id: Optional[str] = None,
                     expected: Optional[Dict] = None) -> Optional[Dict]:
        """
        Delete a document and return what was deleted.

        ``expected`` field values, when given, must still hold for the
        document to be deleted.
        """
        try:
            query = self._build_id_query(doc_id, owner_id)
        except ValueError as e:
            logger.warning(f"Invalid document ID {doc_id}: {e}")
            return None

        if expected:
            query.update(expected)

        try:
            document = self.get_collection(collection).find_one_and_delete(query)

            if document is not None:
                logger.info(f"Deleted document {doc_id} in {collection}")
            else:
                logger.warning(f"No document deleted for {doc_id} in {collection}")
            return document

        except Exception as e:
            logger.error(f"Failed to delete document {doc_id} in {collection}: {e}")
            raise

    def delete_one(self, collection: str, filters: Dict) -> Optional[Dict]:
        """Delete the first document matching a filter and return it."""
        try:
            return self.get_collection(collection).find_one_and_delete(filters)
        except Exception as e:
            logger.error(f"Failed to delete document in {collection}: {e}")
            raise

    def paginate(self, collection: str, page: int = 1, page_size: int = 20,
                 filters: Dict = None, sort_by: str = "createdAt", sort_order: int = -1) -> PaginationResult:
        """Paginate documents with sorting and filtering."""
        try:
            query = filters or {}
            collection_obj = self.get_collection(collection)

            skip = (page - 1) * page_size
            total = collection_obj.count_documents(query)

            cursor = collection_obj.find(query).sort(sort_by, sort_order).skip(skip).limit(page_size)
            documents = list(cursor)

            logger.debug(f"Paginated {len(documents)} documents from {collection} (page {page})")
            return PaginationResult(documents, total, page, page_size)

        except Exception as e:
            logger.error(f"Failed to paginate documents in {collection}: {e}")
            raise

    def populate(self, documents: List[Dict], field: str, collection: str,
                 fields: Iterable[str] = None) -> List[Dict]:
        """
        Replace referenced IDs in ``field`` with the referenced documents.

        Works for single references and lists of references. References
        that no longer resolve become None (or are dropped from lists).
        """
        ids = set()
        for document in documents:
            value = document.get(field)
            if isinstance(value, list):
                ids.update(value)
            elif value is not None:
                ids.add(value)

        if not ids:
            return documents

        projection = {name: 1 for name in fields} if fields else None
        referenced = {
            doc["_id"]: doc
            for doc in self.find_by_ids(collection, ids, projection)
        }

        for document in documents:
            value = document.get(field)
            if isinstance(value, list):
                document[field] = [referenced[ref] for ref in value if ref in referenced]
            elif value is not None:
                document[field] = referenced.get(value)

        return documents

    # Index Management

    def create_indexes(self) -> None:
        """Create unique and performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            users = self.get_collection(USERS)
            users.create_index("username", unique=True)
            users.create_index([("isActive", ASCENDING)])
            users.create_index([("createdAt", DESCENDING)])

            license_keys = self.get_collection(LICENSE_KEYS)
            license_keys.create_index("key", unique=True)
            license_keys.create_index([("isUsed", ASCENDING), ("createdAt", DESCENDING)])

            services = self.get_collection(SERVICES)
            services.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
            services.create_index("serviceName")
            services.create_index("sampleFormUrl", sparse=True)

            uploads = self.get_collection(UPLOADS)
            uploads.create_index("fileUrl", unique=True)
            uploads.create_index([("userId", ASCENDING)])

            bundles = self.get_collection(BUNDLES)
            bundles.create_index([("isActive", ASCENDING), ("createdAt", DESCENDING)])

            requests = self.get_collection(ASSISTANCE_REQUESTS)
            requests.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])

            audit_logs = self.get_collection(AUDIT_LOGS)
            audit_logs.create_index([("timestamp", DESCENDING)])
            audit_logs.create_index([("userId", ASCENDING), ("timestamp", DESCENDING)])
            audit_logs.create_index([("entity", ASCENDING), ("entityId", ASCENDING)])
            audit_logs.create_index("traceId")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for scripts
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
        _mongodb_service = None
