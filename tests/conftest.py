#!/usr/bin/env python3
"""
SchemaPort Test Configuration - PyTest Configuration and Fixtures

Shared fixtures for the SchemaPort test suite: sample DDL scripts per
dialect, small hand-built IR schemas, a fixed clock for deterministic
emitter output and an isolated configuration environment.
"""

import os
import sys
from datetime import datetime, timezone

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.type_registry import CanonicalType
from core.schema_ir import IRSchema, IREntity, IRAttribute, IRReference, IRRelation, IRIndex
from config.settings import ConfigManager

FIXED_MOMENT = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

SQLSERVER_USERS = (
    "CREATE TABLE Users (Id INT IDENTITY(1,1) PRIMARY KEY, "
    "Email NVARCHAR(255) NOT NULL UNIQUE, CreatedAt DATETIME2 DEFAULT GETDATE())"
)

SQLSERVER_SCRIPT = """
SET ANSI_NULLS ON
GO
CREATE TABLE [dbo].[Customers] (
    [CustomerId] INT IDENTITY(1,1) NOT NULL,
    [Name] NVARCHAR(100) NOT NULL,
    [Notes] NVARCHAR(MAX) NULL,
    [IsActive] BIT NOT NULL DEFAULT ((1)),
    [Balance] MONEY NULL,
    CONSTRAINT [PK_Customers] PRIMARY KEY CLUSTERED ([CustomerId])
)
GO
CREATE TABLE [dbo].[Orders] (
    [OrderId] UNIQUEIDENTIFIER NOT NULL DEFAULT NEWID() PRIMARY KEY,
    [CustomerId] INT NOT NULL,
    [PlacedAt] DATETIME DEFAULT (getdate()),
    CONSTRAINT [FK_Orders_Customers] FOREIGN KEY ([CustomerId])
        REFERENCES [dbo].[Customers] ([CustomerId]) ON DELETE CASCADE
)
GO
CREATE NONCLUSTERED INDEX [IX_Orders_PlacedAt] ON [dbo].[Orders] ([PlacedAt] DESC)
GO
"""

MYSQL_SCRIPT = """
CREATE TABLE `authors` (
  `id` INT NOT NULL AUTO_INCREMENT,
  `name` VARCHAR(120) NOT NULL COMMENT 'Display name',
  `verified` TINYINT(1) NOT NULL DEFAULT 0,
  `bio` LONGTEXT,
  PRIMARY KEY (`id`),
  UNIQUE KEY `uq_authors_name` (`name`)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COMMENT='Book authors';

CREATE TABLE `books` (
  `id` BIGINT NOT NULL AUTO_INCREMENT PRIMARY KEY,
  `author_id` INT NOT NULL,
  `title` VARCHAR(255) NOT NULL,
  `price` DECIMAL(10,2) DEFAULT '9.99',
  `published_at` DATETIME DEFAULT CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP,
  KEY `idx_books_title` (`title`),
  CONSTRAINT `fk_books_author` FOREIGN KEY (`author_id`) REFERENCES `authors` (`id`) ON DELETE CASCADE
) ENGINE=InnoDB;
"""

POSTGRESQL_SCRIPT = """
CREATE TYPE order_status AS ENUM ('pending', 'shipped', 'delivered');

CREATE TABLE accounts (
    id SERIAL PRIMARY KEY,
    email VARCHAR(255) NOT NULL UNIQUE,
    status order_status DEFAULT 'pending',
    settings JSONB,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT now()
);

CREATE TABLE sessions (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    account_id INTEGER REFERENCES accounts(id) ON DELETE CASCADE,
    token TEXT NOT NULL,
    label VARCHAR(40) DEFAULT 'web'::character varying
);

CREATE INDEX idx_sessions_account ON sessions (account_id);
COMMENT ON TABLE accounts IS 'Registered accounts';
"""

ORACLE_SCRIPT = """
CREATE TABLE departments (
    dept_id NUMBER(10) NOT NULL,
    name VARCHAR2(100) NOT NULL,
    budget NUMBER(12,2),
    headcount NUMBER,
    created DATE DEFAULT SYSDATE,
    CONSTRAINT pk_departments PRIMARY KEY (dept_id)
);

CREATE TABLE employees (
    emp_id NUMBER(19) GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY,
    dept_id NUMBER(10),
    bio CLOB,
    CONSTRAINT fk_emp_dept FOREIGN KEY (dept_id) REFERENCES departments (dept_id)
);
"""

SQLITE_SCRIPT = """
CREATE TABLE notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    body CLOB,
    rating DOUBLE,
    weight MYSTERY_TYPE,
    created_at DATETIME DEFAULT (datetime('now'))
);
"""

MONGODB_SCRIPT = """
{
  "collections": [
    {
      "name": "users",
      "fields": {
        "email": {"type": "String", "required": true, "unique": true},
        "age": {"type": "Number"},
        "createdAt": {"type": "Date", "default": "Date.now"}
      }
    },
    {
      "name": "posts",
      "validator": {
        "$jsonSchema": {
          "required": ["title"],
          "properties": {
            "title": {"bsonType": "string", "maxLength": 200},
            "author": {"bsonType": "objectId", "ref": "users"},
            "tags": {"bsonType": "array"}
          }
        }
      }
    }
  ]
}
"""


def attr(name, type_=CanonicalType.INTEGER, **kwargs) -> IRAttribute:
    """Short IRAttribute constructor for hand-built schemas"""
    return IRAttribute(name=name, type=type_, **kwargs)


def pk(name='id') -> IRAttribute:
    return IRAttribute(name=name, type=CanonicalType.INTEGER, is_primary_key=True, is_optional=False,
                       is_auto_increment=True)


def blog_schema() -> IRSchema:
    """users <- posts <- comments, with one index and one unique column"""
    users = IREntity('users', [
        pk(),
        attr('email', CanonicalType.STRING, length=255, is_optional=False, is_unique=True),
        attr('created_at', CanonicalType.TIMESTAMP, is_optional=False, default='now()'),
    ], primary_key=['id'])
    posts = IREntity('posts', [
        pk(),
        attr('user_id', is_optional=False, references=IRReference('users', 'id', on_delete='CASCADE')),
        attr('title', CanonicalType.STRING, length=200, is_optional=False),
        attr('published', CanonicalType.BOOLEAN, is_optional=False, default='false'),
    ], primary_key=['id'], indexes=[IRIndex(['title'])])
    comments = IREntity('comments', [
        pk(),
        attr('post_id', references=IRReference('posts', 'id')),
        attr('body', CanonicalType.TEXT),
    ], primary_key=['id'])
    relations = [
        IRRelation('posts', 'users', ['user_id'], ['id'], on_delete='CASCADE'),
        IRRelation('comments', 'posts', ['post_id'], ['id']),
    ]
    # Declared child-first on purpose
    return IRSchema(entities=[comments, posts, users], relations=relations)


@pytest.fixture
def fixed_clock():
    """Clock pinned to one moment so emitted text is byte-stable"""
    return lambda: FIXED_MOMENT


@pytest.fixture
def sample_scripts():
    """One representative script per source dialect"""
    return {
        'sqlserver': SQLSERVER_SCRIPT,
        'mysql': MYSQL_SCRIPT,
        'postgresql': POSTGRESQL_SCRIPT,
        'oracle': ORACLE_SCRIPT,
        'sqlite': SQLITE_SCRIPT,
        'mongodb': MONGODB_SCRIPT,
    }


@pytest.fixture
def users_script():
    return SQLSERVER_USERS


@pytest.fixture
def blog_ir():
    return blog_schema()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Every test sees default settings, untouched by the caller's environment"""
    for key in list(os.environ):
        if key.startswith('SCHEMAPORT_'):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv('SCHEMAPORT_HOME', str(tmp_path))
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# Custom markers for test organization
def pytest_configure(config):
    """Configure custom pytest markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test component interaction"
    )
    config.addinivalue_line(
        "markers", "api: REST API tests"
    )
