"""
Configuration for the counter race harness.

Connection parameters come from the environment so credentials never live in
the source tree. COUNTER_DSN, when set, takes precedence over the individual
DB_* variables. Tuning defaults below can be overridden on the command line.
"""

import os

from psycopg2.extensions import parse_dsn

# Database connection parameters
DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', '5432')),
    'database': os.environ.get('DB_NAME', 'counter_db'),
    'user': os.environ.get('DB_USER', 'counter_user'),
    'password': os.environ.get('DB_PASSWORD', 'counter_password')
}

DSN_ENV_VAR = 'COUNTER_DSN'

# Configuration
TABLE_NAME = 'counter_row'
ROW_ID = 1
NUM_CONCURRENT = 4
# connections beyond one per client, for the runner's validation reads
POOL_HEADROOM = 2
MAX_ATTEMPTS = 4
RETRY_BACKOFF = 0.0
TRIALS = 1


def connection_kwargs(dsn=None):
    """Keyword arguments for psycopg2.connect / the connection pool"""
    dsn = dsn or os.environ.get(DSN_ENV_VAR)
    if dsn:
        return {'dsn': dsn}
    return dict(DB_CONFIG)


def describe_target(kwargs):
    """Human readable database target without the password"""
    if 'dsn' in kwargs:
        params = parse_dsn(kwargs['dsn'])
        host = params.get('host', 'localhost')
        port = params.get('port', '5432')
        return f"{params.get('dbname', '?')} on {host}:{port}"
    return f"{kwargs['database']} on {kwargs['host']}:{kwargs['port']}"
