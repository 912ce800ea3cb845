# data_parser/__init__.py
from .file_validation import validate_upload, UploadCheck
from .sheet_reader import read_grid
from .row_extractor import RowExtractor

__all__ = ['validate_upload', 'UploadCheck', 'read_grid', 'RowExtractor']
