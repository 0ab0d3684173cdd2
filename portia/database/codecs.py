"""Encoders/decoders between domain records and backend shapes.

RowCodec handles spreadsheet rows (a list of cell values in fixed column
order). PageCodec handles Notion pages (a dict of typed properties).
Both decode through Record.from_fields, so the default-on-missing policy
is identical whichever backend produced the data.
"""
from typing import Dict, List, Optional

from portia.database.store import (
    ACCESS_REGISTRY, ACCESS_REQUESTS, APPLICATIONS, MODELS, USERS,
)
from portia.models import Record, split_emails

# ─────────────────────────────────────────────────────────────
# Spreadsheet rows
# ─────────────────────────────────────────────────────────────

# collection -> (worksheet title, [(field, header)])
SHEET_LAYOUT = {
    USERS: ('Users', [
        ('id', 'ID'),
        ('name', 'Name'),
        ('email', 'Email'),
        ('role', 'Role'),
        ('status', 'Status'),
        ('join_date', 'Join Date'),
        ('offboard_date', 'Offboard Date'),
        ('invited_by', 'Invited By'),
        ('created_at', 'Created At'),
    ]),
    APPLICATIONS: ('Applications', [
        ('id', 'ID'),
        ('name', 'Name'),
        ('category', 'Category'),
        ('description', 'Description'),
        ('admin_emails', 'Admin Emails'),
        ('created_at', 'Created At'),
        ('created_by', 'Created By'),
    ]),
    ACCESS_REQUESTS: ('Access Requests', [
        ('id', 'ID'),
        ('employee_id', 'Employee ID'),
        ('application_id', 'Application ID'),
        ('type', 'Type'),
        ('status', 'Status'),
        ('request_date', 'Request Date'),
        ('approved_date', 'Approved Date'),
        ('approved_by', 'Approved By'),
        ('admin_notes', 'Admin Notes'),
        ('justification', 'Justification'),
        ('auto_generated', 'Auto Generated'),
    ]),
    ACCESS_REGISTRY: ('Access Registry', [
        ('id', 'ID'),
        ('employee_id', 'Employee ID'),
        ('application_id', 'Application ID'),
        ('granted_date', 'Granted Date'),
        ('granted_by', 'Granted By'),
        ('status', 'Status'),
        ('revoked_date', 'Revoked Date'),
        ('revoked_by', 'Revoked By'),
    ]),
}


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ''
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class RowCodec:
    """Encode/decode one collection's spreadsheet rows."""

    def __init__(self, collection: str):
        self.collection = collection
        self.model = MODELS[collection]
        self.sheet_title, layout = SHEET_LAYOUT[collection]
        self.columns = [f for f, _ in layout]
        self.headers = [h for _, h in layout]

    @property
    def last_column(self) -> str:
        return column_letter(len(self.columns) - 1)

    def decode(self, row: List) -> Optional[Record]:
        """Decode a row; rows without an id are padding and return None."""
        cells = list(row) + [''] * (len(self.columns) - len(row))
        data = dict(zip(self.columns, cells))
        if data.get('id') in (None, ''):
            return None

        data = {k: (v.strip() if isinstance(v, str) else v) for k, v in data.items()}
        if 'admin_emails' in data:
            data['admin_emails'] = split_emails(data['admin_emails'])
        return self.model.from_fields(data)

    def encode(self, record: Record) -> List:
        """Encode a record into cell values in column order."""
        data = record.to_dict()
        row = []
        for name in self.columns:
            value = data.get(name)
            if name == 'admin_emails':
                value = ','.join(split_emails(value))
            elif isinstance(value, bool):
                value = 'TRUE' if value else 'FALSE'
            elif value is None:
                value = ''
            row.append(value)
        return row


# ─────────────────────────────────────────────────────────────
# Notion pages
# ─────────────────────────────────────────────────────────────

# Notion caps a single rich_text item at 2000 characters
RICH_TEXT_CHUNK = 2000

# collection -> {field: (property name, property type)}
NOTION_PROPERTIES = {
    USERS: {
        'name': ('Name', 'title'),
        'email': ('Email', 'email'),
        'role': ('Role', 'select'),
        'status': ('Status', 'select'),
        'join_date': ('Join Date', 'date'),
        'offboard_date': ('Offboard Date', 'date'),
        'invited_by': ('Invited By', 'rich_text'),
    },
    APPLICATIONS: {
        'name': ('Name', 'title'),
        'category': ('Category', 'select'),
        'description': ('Description', 'rich_text'),
        'admin_emails': ('Admin Emails', 'multi_select'),
        'created_by': ('Created By', 'rich_text'),
    },
    ACCESS_REQUESTS: {
        'employee_id': ('Employee ID', 'rich_text'),
        'application_id': ('Application ID', 'rich_text'),
        'type': ('Type', 'select'),
        'status': ('Status', 'select'),
        'request_date': ('Request Date', 'date'),
        'approved_date': ('Approved Date', 'date'),
        'approved_by': ('Approved By', 'rich_text'),
        'admin_notes': ('Admin Notes', 'rich_text'),
        'justification': ('Justification', 'rich_text'),
        'auto_generated': ('Auto Generated', 'checkbox'),
    },
    ACCESS_REGISTRY: {
        'employee_id': ('Employee ID', 'rich_text'),
        'application_id': ('Application ID', 'rich_text'),
        'granted_date': ('Granted Date', 'date'),
        'granted_by': ('Granted By', 'rich_text'),
        'status': ('Status', 'select'),
        'revoked_date': ('Revoked Date', 'date'),
        'revoked_by': ('Revoked By', 'rich_text'),
    },
}

# Fields taken from the page's own created_time instead of a property
PAGE_CREATED_TIME = {
    USERS: 'created_at',
    APPLICATIONS: 'created_at',
}

# Property types Notion can filter on with a plain equals
NATIVE_FILTER_TYPES = ('title', 'rich_text', 'email', 'select', 'checkbox')


def _text(items) -> str:
    return ''.join(item.get('plain_text') or item.get('text', {}).get('content', '') for item in items or [])


def _rich_text(value) -> List[Dict]:
    if value is None or value == '':
        return []
    text = str(value)
    return [
        {'text': {'content': text[i:i + RICH_TEXT_CHUNK]}}
        for i in range(0, len(text), RICH_TEXT_CHUNK)
    ]


class PageCodec:
    """Encode/decode one collection's Notion pages."""

    def __init__(self, collection: str):
        self.collection = collection
        self.model = MODELS[collection]
        self.properties = NOTION_PROPERTIES[collection]

    def decode(self, page: Dict) -> Record:
        props = page.get('properties') or {}
        data = {'id': page.get('id')}

        for name, (prop_name, prop_type) in self.properties.items():
            prop = props.get(prop_name) or {}
            data[name] = self._read(prop, prop_type)

        created_field = PAGE_CREATED_TIME.get(self.collection)
        if created_field:
            data[created_field] = page.get('created_time')

        return self.model.from_fields(data)

    def encode(self, data: Dict) -> Dict:
        """
        Encode fields into Notion properties.

        Only the given fields are encoded, so a partial dict yields a
        partial PATCH body. Empty values clear the property.
        """
        properties = {}
        for name, value in data.items():
            if name not in self.properties:
                continue
            prop_name, prop_type = self.properties[name]
            properties[prop_name] = self._write(value, prop_type)
        return properties

    def build_filter(self, filters: Dict) -> Optional[Dict]:
        """Notion query filter for the natively filterable subset of filters."""
        conditions = []
        for name, expected in (filters or {}).items():
            if name not in self.properties:
                continue
            prop_name, prop_type = self.properties[name]
            if prop_type not in NATIVE_FILTER_TYPES:
                continue
            # An empty property decodes to its default, which Notion can't see
            if self.model.DEFAULTS.get(name) not in (None, ''):
                continue
            if prop_type == 'checkbox':
                value = str(expected).lower() == 'true'
            else:
                value = str(expected)
            conditions.append({'property': prop_name, prop_type: {'equals': value}})

        if not conditions:
            return None
        if len(conditions) == 1:
            return conditions[0]
        return {'and': conditions}

    @staticmethod
    def _read(prop: Dict, prop_type: str):
        if prop_type in ('title', 'rich_text'):
            return _text(prop.get(prop_type))
        if prop_type == 'email':
            return prop.get('email') or ''
        if prop_type == 'select':
            select = prop.get('select') or {}
            return select.get('name') or ''
        if prop_type == 'multi_select':
            return [item.get('name') for item in prop.get('multi_select') or [] if item.get('name')]
        if prop_type == 'date':
            date = prop.get('date') or {}
            return date.get('start') or ''
        if prop_type == 'checkbox':
            return bool(prop.get('checkbox'))
        raise ValueError(f"Unsupported Notion property type: {prop_type}")

    @staticmethod
    def _write(value, prop_type: str) -> Dict:
        if prop_type in ('title', 'rich_text'):
            return {prop_type: _rich_text(value)}
        if prop_type == 'email':
            return {'email': value or None}
        if prop_type == 'select':
            return {'select': {'name': str(value)} if value else None}
        if prop_type == 'multi_select':
            return {'multi_select': [{'name': email} for email in split_emails(value)]}
        if prop_type == 'date':
            return {'date': {'start': value} if value else None}
        if prop_type == 'checkbox':
            return {'checkbox': bool(value)}
        raise ValueError(f"Unsupported Notion property type: {prop_type}")
