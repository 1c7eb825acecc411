"""Shared test fixtures for ctxgraph."""

from __future__ import annotations

from pathlib import Path

import pytest

from ctxgraph.config import ProjectConfig
from ctxgraph.engine import ContextEngine, ProjectSnapshot
from ctxgraph.semantic.embeddings import HashEmbeddingProvider


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project with Python, JavaScript and TypeScript files."""
    # Main module
    (tmp_path / "main.py").write_text('''"""Main application entry point."""

from utils import helper_function, calculate_total
from models import User, Order


def main():
    """Run the main application."""
    user = User("Alice", "alice@example.com")
    order = Order(user, items=["widget", "gadget"])
    total = calculate_total(order.items)
    result = helper_function(total)
    print(f"Order total: {result}")
    return result


if __name__ == "__main__":
    main()
''')

    # Utils module
    (tmp_path / "utils.py").write_text('''"""Utility functions."""

TAX_RATE = 0.08


def helper_function(value):
    """Apply formatting to a value."""
    return f"${value:.2f}"


def calculate_total(items):
    """Calculate total price for a list of items."""
    prices = {"widget": 9.99, "gadget": 24.99, "doohickey": 4.99}
    subtotal = sum(prices.get(item, 0) for item in items)
    tax = subtotal * TAX_RATE
    return subtotal + tax


def validate_email(email):
    """Validate an email address."""
    import re
    pattern = r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+\\.[a-zA-Z0-9-.]+$"
    return bool(re.match(pattern, email))
''')

    # Models module
    (tmp_path / "models.py").write_text('''"""Data models."""


class User:
    """Represents a user in the system."""

    def __init__(self, name: str, email: str):
        self.name = name
        self.email = email

    def display_name(self):
        """Get the display name."""
        return self.name.title()

    def is_valid(self):
        """Check if user data is valid."""
        from utils import validate_email
        return bool(self.name) and validate_email(self.email)


class Order:
    """Represents an order."""

    def __init__(self, user: User, items: list):
        self.user = user
        self.items = items
''')

    # A subpackage
    api_dir = tmp_path / "api"
    api_dir.mkdir()
    (api_dir / "__init__.py").write_text('"""API package."""\n')
    (api_dir / "routes.py").write_text('''"""API routes."""

from models import User
from . import handlers


def get_user(user_id: int):
    """Get a user by ID."""
    return handlers.load_user(user_id)
''')
    (api_dir / "handlers.py").write_text('''"""Request handlers."""

from models import User


def load_user(user_id):
    return User(f"user{user_id}", "user@example.com")
''')

    # A TypeScript / JavaScript frontend
    web_dir = tmp_path / "web"
    web_dir.mkdir()
    (web_dir / "auth.ts").write_text('''import { Session } from "./session";

export interface Credentials {
  user: string;
  password: string;
}

export function login(creds: Credentials): Session {
  return new Session(creds.user);
}

export const logout = (session: Session): void => {
  session.close();
};
''')
    (web_dir / "session.ts").write_text('''export class Session {
  constructor(public user: string) {}

  close(): void {
    this.user = "";
  }
}
''')
    (web_dir / "index.js").write_text('''const auth = require("./auth");

function start() {
  return auth.login({ user: "alice", password: "secret" });
}

module.exports = { start };
''')

    # Vendored code that must be skipped
    vendor = tmp_path / "node_modules" / "leftpad"
    vendor.mkdir(parents=True)
    (vendor / "index.js").write_text("module.exports = function leftpad() {};\n")

    return tmp_path


@pytest.fixture
def login_project(tmp_path: Path) -> Path:
    """A single-file project exporting `login`."""
    (tmp_path / "auth.ts").write_text('''export function login(user: string, password: string): boolean {
  return user.length > 0 && password.length > 0;
}
''')
    return tmp_path


@pytest.fixture
def hash_provider() -> HashEmbeddingProvider:
    return HashEmbeddingProvider(dimension=256)


@pytest.fixture
def config() -> ProjectConfig:
    """Config with fast retries for tests."""
    cfg = ProjectConfig()
    cfg.semantic.dimension = 256
    cfg.semantic.backoff_base_s = 0.0
    cfg.semantic.backoff_max_s = 0.0
    cfg.semantic.timeout_s = 5.0
    return cfg


@pytest.fixture
def snapshot(tmp_project: Path, config: ProjectConfig) -> ProjectSnapshot:
    return ContextEngine(config).scan(tmp_project)
