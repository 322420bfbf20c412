"""Bind JSON request bodies to Flask-WTF forms for field-level validation."""
from werkzeug.datastructures import MultiDict


def form_from_json(form_cls, payload):
    """Instantiate ``form_cls`` from a decoded JSON object.

    Nulls and nested values are dropped; nested structures must be flattened by
    the caller. CSRF is checked globally by CSRFProtect, not per form.
    """
    data = MultiDict()
    for key, value in (payload or {}).items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            value = "y" if value else ""
        data.add(key, str(value))
    return form_cls(formdata=data, meta={"csrf": False})


def form_errors(form) -> dict:
    return {name: errors[0] if len(errors) == 1 else errors for name, errors in form.errors.items()}
