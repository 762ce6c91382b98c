"""
Product Service - Business Logic for Products
"""
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import List, Optional, Tuple
from uuid import UUID

from branchstock.core import atomic
from branchstock.core.exceptions import NotFoundError, ValidationError
from branchstock.models import Product
from branchstock.schemas.product import ProductCreate, ProductUpdate

class ProductService:
    """Product business logic"""
    
    @staticmethod
    def get_products(
        db: Session,
        tenant_id: UUID,
        search: Optional[str] = None,
        active_only: bool = True,
        page: int = 1,
        per_page: int = 50
    ) -> Tuple[List[Product], int]:
        """Get tenant products with filters and pagination"""
        query = db.query(Product).filter(Product.organization_id == tenant_id)
        
        if active_only:
            query = query.filter(Product.is_active == True)
        
        if search:
            search_term = f"%{search}%"
            query = query.filter(
                or_(
                    Product.sku.ilike(search_term),
                    Product.name.ilike(search_term),
                    Product.barcode.ilike(search_term)
                )
            )
        
        total = query.count()
        
        products = query.order_by(Product.name)\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        
        return products, total
    
    @staticmethod
    def get_product_for_tenant(db: Session, tenant_id: UUID, product_id: UUID) -> Product:
        """Get a product owned by the tenant, NotFoundError otherwise"""
        if product_id is None:
            raise ValidationError("product_id is required", field="product_id")
        product = db.query(Product).filter(
            Product.id == product_id,
            Product.organization_id == tenant_id
        ).first()
        if not product:
            raise NotFoundError("Product", product_id)
        return product
    
    @staticmethod
    def get_product_by_sku(db: Session, tenant_id: UUID, sku: str) -> Optional[Product]:
        """Get product by SKU within a tenant"""
        return db.query(Product).filter(
            Product.organization_id == tenant_id,
            Product.sku == sku
        ).first()
    
    @staticmethod
    def create_product(db: Session, tenant_id: UUID, product_data: ProductCreate) -> Product:
        """Create new product"""
        if product_data.sku and ProductService.get_product_by_sku(db, tenant_id, product_data.sku):
            raise ValidationError(f"SKU already exists: {product_data.sku}", field="sku")
        
        product = Product(
            organization_id=tenant_id,
            sku=product_data.sku,
            barcode=product_data.barcode,
            name=product_data.name,
            description=product_data.description,
            cost_price=product_data.cost_price,
            selling_price=product_data.selling_price
        )
        
        with atomic(db):
            db.add(product)
        db.refresh(product)
        return product
    
    @staticmethod
    def update_product(db: Session, tenant_id: UUID, product_id: UUID, product_data: ProductUpdate) -> Product:
        """Update descriptive fields of a product"""
        product = ProductService.get_product_for_tenant(db, tenant_id, product_id)
        
        with atomic(db):
            for field, value in product_data.model_dump(exclude_unset=True).items():
                setattr(product, field, value)
        db.refresh(product)
        return product
