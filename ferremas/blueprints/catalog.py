"""Catalog blueprint: products, categories, brands and branches."""
from decimal import Decimal, InvalidOperation

from flask import Blueprint, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload
import logging

from ferremas.database import get_session
from ferremas.decorators.permissions import require_role
from ferremas.exceptions import ValidationError, NotFoundError, ConflictError
from ferremas.models import Product, Category, Brand, Branch, UserRole
from ferremas.services.order_service import clamp_page
from ferremas.utils.responses import success_response, get_json_body, get_int_arg

logger = logging.getLogger(__name__)

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api/v1')

ADMIN = UserRole.ADMINISTRADOR.value
WAREHOUSE = UserRole.BODEGUERO.value

STOCK_OPERATIONS = ('set', 'add', 'subtract')


def _parse_price(value, errors, required=True):
    if value is None or value == '':
        if required:
            errors.append({'field': 'price', 'message': 'El precio es requerido'})
        return None
    try:
        price = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        price = None
    if price is None or price <= 0:
        errors.append({'field': 'price', 'message': 'El precio debe ser un número positivo'})
        return None
    return price


def _parse_stock(value, errors, field='stock'):
    """Whole, non-negative quantity; booleans and fractions are rejected."""
    if isinstance(value, bool):
        value = None
    try:
        quantity = int(str(value).strip())
    except (TypeError, ValueError):
        quantity = None
    if quantity is None or quantity < 0:
        errors.append({'field': field, 'message': 'El stock debe ser un número entero mayor o igual a 0'})
        return None
    return quantity


def _resolve(session, model, value, field, errors):
    """Optional foreign key: None stays None, unknown ids are an error."""
    if value in (None, ''):
        return None
    try:
        obj = session.get(model, int(value))
    except (TypeError, ValueError):
        obj = None
    if not obj:
        errors.append({'field': field, 'message': f'{field} no existe'})
        return None
    return obj.id


def _commit_or_conflict(session, message):
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Integrity error: {e.orig}")
        raise ConflictError(message)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@catalog_bp.route('/products', methods=['GET'])
def list_products():
    """
    List active products.

    Query params: category, brand, search, min_price, max_price, limit, offset
    """
    session = get_session()
    query = session.query(Product).options(
        joinedload(Product.category), joinedload(Product.brand)
    ).filter(Product.active.is_(True))

    category_id = get_int_arg('category')
    if category_id:
        query = query.filter(Product.category_id == category_id)
    brand_id = get_int_arg('brand')
    if brand_id:
        query = query.filter(Product.brand_id == brand_id)

    search = (request.args.get('search') or '').strip()
    if search:
        like = f'%{search}%'
        query = query.filter(or_(Product.name.ilike(like), Product.code.ilike(like), Product.description.ilike(like)))

    errors = []
    min_price = _parse_price(request.args.get('min_price'), errors, required=False)
    max_price = _parse_price(request.args.get('max_price'), errors, required=False)
    if errors:
        raise ValidationError('Filtro de precio inválido', errors)
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    limit, offset = clamp_page(get_int_arg('limit'), get_int_arg('offset', 0))
    total = query.count()
    products = query.order_by(Product.name.asc(), Product.id.asc()).limit(limit).offset(offset).all()

    return success_response({
        'products': [p.to_dict() for p in products],
        'total': total,
        'limit': limit,
        'offset': offset,
    })


@catalog_bp.route('/products/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = get_session().get(Product, product_id)
    if not product or not product.active:
        raise NotFoundError('Producto no encontrado')
    return success_response(product.to_dict())


@catalog_bp.route('/products', methods=['POST'])
@require_role(ADMIN)
def create_product():
    session = get_session()
    data = get_json_body()
    errors = []

    code = (data.get('code') or '').strip()
    name = (data.get('name') or '').strip()
    if not code:
        errors.append({'field': 'code', 'message': 'El código es requerido'})
    if not name:
        errors.append({'field': 'name', 'message': 'El nombre es requerido'})
    price = _parse_price(data.get('price'), errors)
    category_id = _resolve(session, Category, data.get('category_id'), 'category_id', errors)
    brand_id = _resolve(session, Brand, data.get('brand_id'), 'brand_id', errors)
    stock = _parse_stock(data['stock'], errors) if data.get('stock') is not None else 0
    if errors:
        raise ValidationError('Datos del producto inválidos', errors)

    product = Product(
        code=code,
        name=name,
        description=data.get('description'),
        price=price,
        category_id=category_id,
        brand_id=brand_id,
        model=data.get('model'),
        stock=stock,
        active=True,
    )
    session.add(product)
    _commit_or_conflict(session, f'Ya existe un producto con código {code}')

    logger.info(f"Product created: {product.code} ({product.id})")
    return success_response(product.to_dict(), 'Producto creado exitosamente', 201)


@catalog_bp.route('/products/<int:product_id>', methods=['PUT'])
@require_role(ADMIN)
def update_product(product_id):
    session = get_session()
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError('Producto no encontrado')

    data = get_json_body()
    errors = []

    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            errors.append({'field': 'name', 'message': 'El nombre es requerido'})
        product.name = name
    if 'code' in data:
        code = (data.get('code') or '').strip()
        if not code:
            errors.append({'field': 'code', 'message': 'El código es requerido'})
        product.code = code
    if 'price' in data:
        product.price = _parse_price(data.get('price'), errors)
    if 'category_id' in data:
        product.category_id = _resolve(session, Category, data.get('category_id'), 'category_id', errors)
    if 'brand_id' in data:
        product.brand_id = _resolve(session, Brand, data.get('brand_id'), 'brand_id', errors)
    if 'stock' in data:
        product.stock = _parse_stock(data.get('stock'), errors)
    for field in ('description', 'model'):
        if field in data:
            setattr(product, field, data.get(field))
    if 'active' in data:
        product.active = bool(data.get('active'))

    if errors:
        session.rollback()
        raise ValidationError('Datos del producto inválidos', errors)

    _commit_or_conflict(session, 'Ya existe un producto con ese código')
    return success_response(product.to_dict(), 'Producto actualizado')


@catalog_bp.route('/products/<int:product_id>/stock', methods=['PUT'])
@require_role(WAREHOUSE, ADMIN)
def update_stock(product_id):
    """
    Adjust the stock of a product.

    Body: ``stock`` (alias ``cantidad``) and ``operacion`` (alias
    ``operation``): ``set`` replaces the level, ``add`` and ``subtract``
    move it. The result can never be negative.
    """
    session = get_session()
    data = get_json_body()
    errors = []

    raw = data['stock'] if 'stock' in data else data.get('cantidad')
    quantity = _parse_stock(raw, errors)
    operation = str(data.get('operacion') or data.get('operation') or 'set').strip().lower()
    if operation not in STOCK_OPERATIONS:
        errors.append({'field': 'operacion', 'message': f"Operación inválida, use: {', '.join(STOCK_OPERATIONS)}"})
    if errors:
        raise ValidationError('Datos de stock inválidos', errors)

    product = session.query(Product).filter(Product.id == product_id).with_for_update().first()
    if not product:
        session.rollback()
        raise NotFoundError('Producto no encontrado')

    previous = product.stock or 0
    if operation == 'add':
        new_stock = previous + quantity
    elif operation == 'subtract':
        new_stock = previous - quantity
    else:
        new_stock = quantity

    if new_stock < 0:
        session.rollback()
        raise ValidationError('Stock no puede ser negativo', [{
            'field': 'stock',
            'message': f'Stock disponible {previous}, no se pueden descontar {quantity}',
        }])

    product.stock = new_stock
    session.commit()

    logger.info(f"Stock {product.code}: {previous} -> {new_stock} ({operation})")
    return success_response({
        'product_id': product.id,
        'product_name': product.name,
        'previous_stock': previous,
        'new_stock': new_stock,
        'operation': operation,
    }, 'Stock actualizado exitosamente')


# ---------------------------------------------------------------------------
# Categories, brands, branches
# ---------------------------------------------------------------------------

def _list_active(model):
    items = get_session().query(model).filter(model.active.is_(True)).order_by(model.name.asc()).all()
    return [item.to_dict() for item in items]


def _required_name(data):
    name = (data.get('name') or '').strip()
    if not name:
        raise ValidationError('Datos inválidos', [{'field': 'name', 'message': 'El nombre es requerido'}])
    return name


@catalog_bp.route('/categories', methods=['GET'])
def list_categories():
    categories = _list_active(Category)
    return success_response({'categories': categories, 'total': len(categories)})


@catalog_bp.route('/categories', methods=['POST'])
@require_role(ADMIN)
def create_category():
    session = get_session()
    data = get_json_body()
    category = Category(name=_required_name(data), description=data.get('description'), active=True)
    session.add(category)
    _commit_or_conflict(session, 'Ya existe una categoría con ese nombre')
    return success_response(category.to_dict(), 'Categoría creada exitosamente', 201)


@catalog_bp.route('/brands', methods=['GET'])
def list_brands():
    brands = _list_active(Brand)
    return success_response({'brands': brands, 'total': len(brands)})


@catalog_bp.route('/brands', methods=['POST'])
@require_role(ADMIN)
def create_brand():
    session = get_session()
    data = get_json_body()
    brand = Brand(name=_required_name(data), country_of_origin=data.get('country_of_origin'), active=True)
    session.add(brand)
    _commit_or_conflict(session, 'Ya existe una marca con ese nombre')
    return success_response(brand.to_dict(), 'Marca creada exitosamente', 201)


@catalog_bp.route('/branches', methods=['GET'])
def list_branches():
    branches = _list_active(Branch)
    return success_response({'branches': branches, 'total': len(branches)})


@catalog_bp.route('/branches', methods=['POST'])
@require_role(ADMIN)
def create_branch():
    session = get_session()
    data = get_json_body()
    branch = Branch(name=_required_name(data), address=data.get('address'), phone=data.get('phone'), active=True)
    session.add(branch)
    session.commit()
    return success_response(branch.to_dict(), 'Sucursal creada exitosamente', 201)
