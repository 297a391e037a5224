"""User model - customers and staff authenticated with email/password."""
import enum

from sqlalchemy import Column, BigInteger, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from ferremas.database import Base, BigIntPK


class UserRole(str, enum.Enum):
    """User roles."""
    CLIENTE = 'cliente'
    VENDEDOR = 'vendedor'
    BODEGUERO = 'bodeguero'
    CONTADOR = 'contador'
    ADMINISTRADOR = 'administrador'


STAFF_ROLES = (
    UserRole.VENDEDOR.value,
    UserRole.BODEGUERO.value,
    UserRole.CONTADOR.value,
    UserRole.ADMINISTRADOR.value,
)


class User(Base):
    """Platform user: a customer or a member of the staff."""

    __tablename__ = 'users'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=True)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.CLIENTE.value)
    rut = Column(String(20), nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(String(255), nullable=True)
    branch_id = Column(BigInteger, ForeignKey('branches.id'), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    @property
    def is_staff(self):
        return self.role in STAFF_ROLES

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': self.role,
            'branch_id': self.branch_id,
            'active': self.active,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
