from catalog_engine.search.engine import ProductSearchEngine
from catalog_engine.search.filters import AttributeValue, build_product_conditions

__all__ = ['ProductSearchEngine', 'AttributeValue', 'build_product_conditions']
