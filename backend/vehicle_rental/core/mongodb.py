"""
MongoDB Connection Module

Uses the standard pymongo driver. The same code works against a local
`mongodb://localhost:27017` instance or a hosted replica set; only
MONGODB_URL changes.
"""
from pymongo import MongoClient, ASCENDING, DESCENDING, GEOSPHERE
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError
from vehicle_rental.core.config import settings
import logging

logger = logging.getLogger(__name__)

# Global database connection
_client: MongoClient = None
_database: Database = None


def get_database() -> Database:
    """Get the MongoDB database instance"""
    global _client, _database

    if _database is None:
        connect_to_mongodb()

    return _database


def connect_to_mongodb():
    """Initialize MongoDB connection"""
    global _client, _database

    try:
        logger.info("Connecting to MongoDB at %s...", settings.MONGODB_URL.split("@")[-1][:50])

        _client = MongoClient(
            settings.MONGODB_URL,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=10000
        )

        # Verify connection
        _client.admin.command("ping")

        _database = _client[settings.DATABASE_NAME]
        logger.info("Connected to MongoDB database: %s", settings.DATABASE_NAME)

        create_indexes(_database)

    except ConnectionFailure as e:
        logger.error("Failed to connect to MongoDB: %s", e)
        raise


def close_mongodb_connection():
    """Close MongoDB connection"""
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes(db: Database):
    """Create database indexes for the collections the API queries"""
    try:
        # Users
        db.users.create_index("id", unique=True)
        db.users.create_index("email", unique=True)
        db.users.create_index([("role", ASCENDING), ("is_active", ASCENDING)])
        db.users.create_index([("location", GEOSPHERE)])

        # Vehicles
        db.vehicles.create_index("id", unique=True)
        db.vehicles.create_index("specifications.registration_number", unique=True)
        db.vehicles.create_index([("coordinates", GEOSPHERE)])
        db.vehicles.create_index([("type", ASCENDING), ("is_available", ASCENDING), ("created_at", DESCENDING)])
        db.vehicles.create_index([("fuel_type", ASCENDING), ("is_available", ASCENDING)])
        db.vehicles.create_index([("price_per_day", ASCENDING), ("is_available", ASCENDING)])
        db.vehicles.create_index([("vendor_id", ASCENDING), ("is_available", ASCENDING)])

        # Bookings
        db.bookings.create_index("id", unique=True)
        db.bookings.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
        db.bookings.create_index([("vendor_id", ASCENDING), ("status", ASCENDING)])
        db.bookings.create_index([("vehicle_id", ASCENDING), ("status", ASCENDING)])
        db.bookings.create_index([("start_date", ASCENDING), ("end_date", ASCENDING)])

        # Mechanic profiles
        db.mechanics.create_index("id", unique=True)
        # Seeded profiles may have no owner
        db.mechanics.create_index(
            "user_id", unique=True, partialFilterExpression={"user_id": {"$type": "string"}}
        )
        db.mechanics.create_index([("location", GEOSPHERE)])

        # Mechanic bookings
        db.mechanic_bookings.create_index("id", unique=True)
        db.mechanic_bookings.create_index([("customer_id", ASCENDING), ("status", ASCENDING)])
        db.mechanic_bookings.create_index([("mechanic_id", ASCENDING), ("status", ASCENDING)])
        db.mechanic_bookings.create_index("preferred_date")

        db.feedback.create_index("id", unique=True)

        logger.info("Database indexes created successfully")

    except PyMongoError as e:
        logger.warning("Error creating indexes (may already exist): %s", e)


# Dependency for FastAPI
def get_db():
    """Dependency to get database for FastAPI routes"""
    return get_database()
