import logging
from datetime import datetime
from decimal import Decimal
from typing import Generator, Optional, Tuple

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, selectinload, sessionmaker

from whatsapp_vendas.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()

REQUIRED_TABLES = ("admins", "produtos", "pedidos", "itens_pedido", "configuracoes", "conversas")

EDITABLE_PRODUCT_FIELDS = {
    "nome": "name",
    "categoria": "category",
    "preco": "price",
    "descricao": "description",
}


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug("Initializing database")
    try:
        # Import models to register them with Base.metadata
        import whatsapp_vendas.models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and the store tables exist.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        inspector = inspect(engine)
        missing = [name for name in REQUIRED_TABLES if not inspector.has_table(name)]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Admin / Conversation Repository Functions
# =============================================================================

def is_admin(db: Session, phone: str) -> bool:
    """Return True when the canonical phone has an active admin record."""
    from whatsapp_vendas.models import Admin

    found = (
        db.query(Admin.id)
        .filter(Admin.phone == phone, Admin.active.is_(True))
        .first()
    )
    logger.debug(f"Admin lookup for {phone}: {'found' if found else 'not found'}")
    return found is not None


def save_conversation(db: Session, phone: str, message: str, kind: str):
    """
    Append a message to the conversation log.

    Args:
        db: Database session
        phone: Canonical phone identifier
        message: Message text
        kind: cliente, bot or admin
    """
    from whatsapp_vendas.models import Conversation

    record = Conversation(phone=phone, message=message, kind=kind, created_at=datetime.now())
    db.add(record)
    db.commit()
    logger.debug(f"Conversation saved: phone={phone}, kind={kind}")
    return record


def list_conversations(
    db: Session,
    limit: int = 50,
    offset: int = 0,
    phone: Optional[str] = None,
    kind: Optional[str] = None,
) -> Tuple[list, int]:
    """
    Retrieve conversation records with pagination and filtering.

    Returns:
        Tuple of (records list, total count matching filters)
    """
    from whatsapp_vendas.models import Conversation

    query = db.query(Conversation)
    if phone:
        query = query.filter(Conversation.phone == phone)
    if kind:
        query = query.filter(Conversation.kind == kind)

    total = query.count()
    records = (
        query.order_by(Conversation.created_at.asc(), Conversation.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    logger.info(f"Retrieved {len(records)} of {total} conversation records")
    return records, total


# =============================================================================
# Catalog Repository Functions
# =============================================================================

def list_active_products(db: Session) -> list:
    """Active products ordered by category (ascending), then id."""
    from whatsapp_vendas.models import Product

    return (
        db.query(Product)
        .filter(Product.active.is_(True))
        .order_by(Product.category.asc(), Product.id.asc())
        .all()
    )


def get_product(db: Session, product_id: int):
    from whatsapp_vendas.models import Product

    return db.query(Product).filter(Product.id == product_id).first()


def update_product_stock(db: Session, product_id: int, quantity: int):
    """
    Set a product's stock.

    Store errors are logged and reported as a missing product.

    Returns:
        Updated Product, or None if not found or the update failed
    """
    try:
        product = get_product(db, product_id)
        if product is None:
            return None
        product.stock = quantity
        product.updated_at = datetime.now()
        db.commit()
        db.refresh(product)
        logger.info(f"Stock updated: product={product_id}, stock={quantity}")
        return product
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update stock for product {product_id}: {e}")
        return None


def create_product(
    db: Session,
    name: str,
    category: str,
    price: Decimal,
    stock: int,
    description: Optional[str] = None,
):
    from whatsapp_vendas.models import Product

    product = Product(
        name=name,
        category=category,
        price=price,
        stock=stock,
        description=description,
        active=True,
        updated_at=datetime.now(),
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info(f"Product created: id={product.id}, name={name}")
    return product


def update_product_field(db: Session, product_id: int, field: str, value):
    """
    Update one editable field (nome, categoria, preco, descricao).

    Returns:
        Updated Product, or None if not found or the update failed
    """
    attribute = EDITABLE_PRODUCT_FIELDS[field]
    try:
        product = get_product(db, product_id)
        if product is None:
            return None
        setattr(product, attribute, value)
        product.updated_at = datetime.now()
        db.commit()
        db.refresh(product)
        logger.info(f"Product updated: id={product_id}, field={field}")
        return product
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update product {product_id}: {e}")
        return None


def deactivate_product(db: Session, product_id: int):
    """Soft-delete a product. Returns the Product, or None if not found."""
    try:
        product = get_product(db, product_id)
        if product is None:
            return None
        product.active = False
        product.updated_at = datetime.now()
        db.commit()
        db.refresh(product)
        logger.info(f"Product deactivated: id={product_id}")
        return product
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to deactivate product {product_id}: {e}")
        return None


def get_config_map(db: Session) -> dict:
    """All store settings as a {chave: valor} mapping."""
    from whatsapp_vendas.models import ConfigEntry

    return {entry.key: entry.value for entry in db.query(ConfigEntry).all()}


# =============================================================================
# Order Repository Functions
# =============================================================================

def list_orders_since(db: Session, since: datetime) -> list:
    """Orders placed at or after `since` with their line items, newest first."""
    from whatsapp_vendas.models import Order

    return (
        db.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.created_at >= since)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def update_order_status(db: Session, number: str, status: str):
    """Returns the updated Order, or None if not found or the update failed."""
    from whatsapp_vendas.models import Order

    try:
        order = db.query(Order).filter(Order.number == number).first()
        if order is None:
            return None
        order.status = status
        db.commit()
        db.refresh(order)
        logger.info(f"Order status updated: number={number}, status={status}")
        return order
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to update order {number}: {e}")
        return None
