"""Initial schema: one table per Portia collection."""


def up(conn):
    cursor = conn.cursor()

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL DEFAULT '',
            email TEXT NOT NULL DEFAULT '',
            role TEXT NOT NULL DEFAULT 'employee',
            status TEXT NOT NULL DEFAULT 'active',
            join_date TEXT,
            offboard_date TEXT,
            invited_by TEXT,
            created_at TEXT
        )
    ''')

    # admin_emails is comma-joined, same as the spreadsheet column
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS applications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL DEFAULT '',
            category TEXT,
            description TEXT,
            admin_emails TEXT,
            created_at TEXT,
            created_by TEXT
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS access_requests (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            employee_id TEXT NOT NULL DEFAULT '',
            application_id TEXT NOT NULL DEFAULT '',
            type TEXT NOT NULL DEFAULT 'new',
            status TEXT NOT NULL DEFAULT 'pending',
            request_date TEXT,
            approved_date TEXT,
            approved_by TEXT,
            admin_notes TEXT,
            justification TEXT,
            auto_generated INTEGER NOT NULL DEFAULT 0
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS access_registry (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            employee_id TEXT NOT NULL DEFAULT '',
            application_id TEXT NOT NULL DEFAULT '',
            granted_date TEXT,
            granted_by TEXT,
            status TEXT NOT NULL DEFAULT 'active',
            revoked_date TEXT,
            revoked_by TEXT
        )
    ''')

    cursor.execute('CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_requests_employee ON access_requests(employee_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_requests_application ON access_requests(application_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_requests_status ON access_requests(status)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_registry_employee ON access_registry(employee_id)')
    cursor.execute('CREATE INDEX IF NOT EXISTS idx_registry_application ON access_registry(application_id)')


def down(conn):
    cursor = conn.cursor()
    cursor.execute('DROP TABLE IF EXISTS access_registry')
    cursor.execute('DROP TABLE IF EXISTS access_requests')
    cursor.execute('DROP TABLE IF EXISTS applications')
    cursor.execute('DROP TABLE IF EXISTS users')
