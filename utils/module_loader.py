"""
Module loader for automatic blueprint registration.
Discovers and registers all blueprints from the blueprints directory.
"""
import importlib
import inspect
from pathlib import Path
from flask import Blueprint

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _discover(blueprint_dir):
    blueprint_path = PROJECT_ROOT / blueprint_dir
    if not blueprint_path.exists():
        return []
    return sorted(f.stem for f in blueprint_path.glob('*.py') if not f.name.startswith('_'))


def _import(blueprint_dir, module_name):
    return importlib.import_module(f"{blueprint_dir.replace('/', '.')}.{module_name}")


def _blueprints_in(module):
    return [(name, obj) for name, obj in inspect.getmembers(module) if isinstance(obj, Blueprint)]


def load_modules(app, blueprint_dir='blueprints'):
    """
    Automatically discover and register all blueprints from the blueprint directory.

    Args:
        app: Flask application instance
        blueprint_dir: Package directory (relative to the project root) holding blueprint modules
    """
    for module_name in _discover(blueprint_dir):
        try:
            module = _import(blueprint_dir, module_name)
        except ImportError:
            app.logger.exception(f"Error loading module '{module_name}'")
            raise

        config = getattr(module, 'MODULE_CONFIG', {})
        if not config.get('enabled', True):
            app.logger.info(f"Skipping disabled module '{module_name}'")
            continue

        blueprints_found = _blueprints_in(module)
        if not blueprints_found:
            app.logger.warning(f"No blueprints found in module '{module_name}'")

        for _, blueprint in blueprints_found:
            url_prefix = config.get('url_prefix', f"/{blueprint.name}")
            app.register_blueprint(blueprint, url_prefix=url_prefix)
            app.logger.info(f"Registered blueprint '{blueprint.name}' from module '{module_name}' at '{url_prefix}'")


def get_modules_info(blueprint_dir='blueprints'):
    """
    Get information about all available modules.

    Returns:
        List of tuples containing (module_name, blueprints_in_module)
    """
    modules_info = []
    for module_name in _discover(blueprint_dir):
        module = _import(blueprint_dir, module_name)
        blueprints = [bp.name for _, bp in _blueprints_in(module)]
        if blueprints:
            modules_info.append((module_name, blueprints))
    return modules_info
