from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
from datetime import datetime, date
from sqlalchemy import String, Integer, Float, Date, DateTime, Text, ForeignKey, Enum, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum


class ReportStatus(enum.Enum):
    PENDING = "PENDIENTE"
    GENERATED = "GENERADO"
    ERROR = "ERROR"


class Client(db.Model):
    __tablename__ = 'clientes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=True)
    ci: Mapped[str] = mapped_column(String(20), nullable=True)  # Cédula de identidad
    phone: Mapped[str] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    sales = relationship("Sale", back_populates="client")


class Medicine(db.Model):
    __tablename__ = 'medicamentos'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    min_stock: Mapped[int] = mapped_column(Integer, nullable=True, default=0)
    purchase_price: Mapped[float] = mapped_column(Float, default=0.0)
    sale_price: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=True, default='ACTIVO')  # ACTIVO, INACTIVO
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    sale_items = relationship("SaleItem", back_populates="medicine")


class Sale(db.Model):
    __tablename__ = 'ventas'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(Integer, ForeignKey('clientes.id'), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    sale_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(20), nullable=True, default='completada')

    # Relationships
    client = relationship("Client", back_populates="sales")
    items = relationship("SaleItem", back_populates="sale")


class SaleItem(db.Model):
    __tablename__ = 'items_venta'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_id: Mapped[int] = mapped_column(Integer, ForeignKey('ventas.id'), nullable=False)
    medicine_id: Mapped[int] = mapped_column(Integer, ForeignKey('medicamentos.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False)

    # Relationships
    sale = relationship("Sale", back_populates="items")
    medicine = relationship("Medicine", back_populates="sale_items")


class StockEntry(db.Model):
    """Inbound stock movements (purchases, returns from suppliers, etc.)"""
    __tablename__ = 'entradas_inventario'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    medicine_id: Mapped[int] = mapped_column(Integer, ForeignKey('medicamentos.id'), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    unit_cost: Mapped[float] = mapped_column(Float, default=0.0)
    notes: Mapped[str] = mapped_column(Text, nullable=True)

    # Relationships
    medicine = relationship("Medicine")


class StockExit(db.Model):
    """Outbound stock movements other than sales (waste, expiry, adjustments)"""
    __tablename__ = 'salidas_inventario'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    medicine_id: Mapped[int] = mapped_column(Integer, ForeignKey('medicamentos.id'), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    exit_date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    reason: Mapped[str] = mapped_column(String(100), nullable=True)  # VENCIMIENTO, DAÑO, AJUSTE...

    # Relationships
    medicine = relationship("Medicine")


class ReportLog(db.Model):
    """Audit trail of generated reports"""
    __tablename__ = 'reportes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=True)
    parameters: Mapped[dict] = mapped_column(JSON(none_as_null=True), nullable=True)
    result_size: Mapped[int] = mapped_column(Integer, nullable=True)
    status: Mapped[ReportStatus] = mapped_column(Enum(ReportStatus, native_enum=False), default=ReportStatus.PENDING)
    notes: Mapped[str] = mapped_column(Text, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Receipt(db.Model):
    """Register of issued sale receipts, one per sale"""
    __tablename__ = 'comprobantes'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sale_id: Mapped[int] = mapped_column(Integer, ForeignKey('ventas.id'), nullable=False, unique=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default='FACTURA')  # FACTURA, BOLETA...
    series: Mapped[str] = mapped_column(String(10), nullable=False, default='F001')
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    data: Mapped[dict] = mapped_column(JSON, nullable=True)  # sale + items snapshot
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    sale = relationship("Sale")


class SystemConfiguration(db.Model):
    __tablename__ = 'system_configuration'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[str] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
