from .exporter import StructurePreservingExporter

__all__ = ['StructurePreservingExporter']
