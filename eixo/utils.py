import json
import re
from datetime import datetime, date


def date_format_filter(value, include_time=False):
    if not value: return ''
    # Assume standard SQLite format: YYYY-MM-DD HH:MM:SS
    # Return DD/MM/YYYY [HH:MM]
    if isinstance(value, (datetime, date)):
        value = value.isoformat(sep=' ') if isinstance(value, datetime) else value.isoformat()
    if not isinstance(value, str):
        return value
    try:
        parts = value.replace('T', ' ').split(' ')
        date_part = parts[0]
        time_part = parts[1] if len(parts) > 1 else ''

        y, m, d = date_part.split('-')
        formatted_date = f"{d}/{m}/{y}"

        if include_time and time_part:
            # Take only HH:MM
            return f"{formatted_date} {time_part[:5]}"
        return formatted_date
    except ValueError:
        return value

def format_currency(value):
    if value is None or value == '':
        return 'R$ 0,00'
    try:
        value = float(value)
    except (TypeError, ValueError):
        return value
    text = f"{value:,.2f}"
    # 1,234.56 -> 1.234,56
    return 'R$ ' + text.replace(',', 'X').replace('.', ',').replace('X', '.')

def from_json_filter(value, default=None):
    if default is None:
        default = {}
    if not value: return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default

def to_json(value):
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)

def parse_iso(value):
    """Aceita 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS' ou ISO com 'T'/'Z'."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip().replace('Z', '')
    if '+' in text[10:]:
        text = text[:10] + text[10:].split('+')[0]
    return datetime.fromisoformat(text.replace(' ', 'T'))

def now_str():
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')

def row_to_dict(row, json_fields=()):
    if row is None:
        return None
    data = dict(row)
    for field in json_fields:
        if field in data:
            data[field] = from_json_filter(data[field], default=None)
    return data

def rows_to_dicts(rows, json_fields=()):
    return [row_to_dict(r, json_fields) for r in rows]

def strip_code_fences(content):
    cleaned = content.strip()
    cleaned = re.sub(r'^```(?:json)?\s*', '', cleaned)
    cleaned = re.sub(r'\s*```$', '', cleaned)
    return cleaned.strip()

def as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'sim', 'yes', 'on')
    return bool(value)

def casefold(value):
    return value.casefold() if isinstance(value, str) else value

def ilike(*columns):
    """Busca por trecho sem diferenciar maiúsculas, inclusive acentuadas ('É' == 'é')."""
    return '(' + ' OR '.join(f'casefold({c}) LIKE ?' for c in columns) + ')'

def contains(term):
    return f'%{casefold(str(term))}%'
