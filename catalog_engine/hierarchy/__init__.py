from catalog_engine.hierarchy.manager import CategoryHierarchyManager

__all__ = ['CategoryHierarchyManager']
