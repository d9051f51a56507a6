"""
Blueprint package with automatic module registration.
Each module defines its blueprint as a '*_bp' variable plus a MODULE_CONFIG dict.
"""
from utils.module_loader import load_modules, get_modules_info

__all__ = ['load_modules', 'get_modules_info']
