"""Prompt templates for model calls.

Templates are jinja2 sources keyed by name and rendered with ``render()``.
Undefined variables raise instead of rendering as empty text.
"""

from __future__ import annotations

from typing import Any

from jinja2 import DictLoader, Environment, StrictUndefined

# System prompt for routing the ideation conversation
ROUTER_SYSTEM = """You are an expert AI assistant that helps iterate on coding ideas in order to inform an eventual software specification to implement a software project.

The user has approached you with an idea for a software project.

Look at the conversation history and determine what we need to do next.

Either we have sufficient information to generate an implementation plan, or we need to ask the user a follow-up question.

Consider the user's intent, as well as the following:

- Do we have a clear idea of the domain of the project?
- Have we asked about user authentication yet? We should always ask about auth unless it's obvious that the user doesn't need it.
- Do we have an idea of features like auth, email, realtime, etc?"""

ASK_NEXT_QUESTION_SYSTEM = """You are an expert software architect helping a user shape an idea for a web API.

Ask exactly ONE concise follow-up question that will most improve the eventual implementation plan.
Do not answer on the user's behalf and do not write any code.
{% if topics %}
Topics that still need clarification:
{% for topic in topics %}
- {{ topic }}
{% endfor %}
{% endif %}"""

GENERATE_SPEC_SYSTEM = """You are a senior engineer writing a handoff document for a developer.

Summarize the conversation into a detailed implementation plan (in markdown) for a data API built on:

- Hono for the API
- Cloudflare D1 (sqlite) for the relational database
- Drizzle ORM for the query builder
- Cloudflare Workers as the deployment target

Cover the data model, the API routes, authentication, and any open risks.
Give the project a short descriptive title."""

ANALYZE_TABLES_SYSTEM = """You are a database architect. Read a software specification and decide which relational tables are needed.

Describe every table with its columns, types, constraints, and relationships as a markdown document.
Target sqlite (Cloudflare D1); prefer integer primary keys and ISO-8601 text timestamps."""

ANALYZE_TABLES_USER = """Please analyze this specification and determine the database tables needed:

{{ spec }}"""

IDENTIFY_RULES_SYSTEM = """You select knowledge-base rules that apply to a database schema. Only select rules from the list you are given."""

IDENTIFY_RULES_USER = """Based on this database schema, which rules should be applied?
[DATABASE SCHEMA SPECIFICATION]
{{ schema_specification }}
[END DATABASE SCHEMA SPECIFICATION]
***
[AVAILABLE RULES]
{{ rules | join(", ") }}
[END AVAILABLE RULES]"""

GENERATE_SCHEMA_SYSTEM = """You are an expert in Drizzle ORM for sqlite. Write a complete `src/db/schema.ts` module.

- Import table builders from "drizzle-orm/sqlite-core".
- Export every table.
- Use `sql` defaults for timestamps.
- Do not include explanations inside the code."""

GENERATE_SCHEMA_USER = """Generate Drizzle ORM schema code for the following tables:

[BEGIN DATA]
************
[specification]:
{{ schema_specification }}
************
[Additional context]:
{{ rules_json }}
************
[END DATA]"""

ANALYZE_SCHEMA_ERRORS = """I'm writing a Drizzle ORM schema for a Cloudflare D1 database. The schema was designed from this specification:

{{ schema_specification }}

Here is my current schema.ts file:

```typescript
{{ schema }}
```

The TypeScript compiler reports these errors:

{{ errors_json }}

What is causing these errors and how should I fix my schema.ts file?
{% if web_search %}
Search the latest Drizzle ORM documentation where it helps.
{% endif %}"""

FIX_SCHEMA = """I need you to generate a fixed version of a Drizzle ORM schema.ts file. The original schema had TypeScript errors that were analyzed, and I'm providing you with the analysis results.

Here's the analysis of the schema errors:

{{ analysis }}

Here's the original schema:

```typescript
{{ original }}
```

Based on this analysis, generate a corrected schema.ts file that fixes all the issues identified.

Return only the fixed schema code in a single typescript code block."""

GENERATE_API_SYSTEM = """You are a friendly, expert full-stack TypeScript engineer building an API with Hono on Cloudflare Workers, using Drizzle ORM against a D1 database.

Design a simple CRUD API for the key resources in the app.
Expose a REST API for creating, reading, updating, and deleting resources.
For streaming or realtime APIs, add a TODO comment pointing at the Hono streaming helper or Durable Objects documentation.

Tips:
- Import tables from "./db/schema".
- Prefer Number.parseInt over parseInt.
- Export the Hono app as the default export."""

GENERATE_API_USER = """Here is the Drizzle schema for the database (src/db/schema.ts):

```typescript
{{ schema }}
```

Here is the specification for the project:

{{ spec }}

Write the complete src/index.ts file."""

ANALYZE_API_ERRORS = """I'm trying to create a Hono API with Drizzle ORM using Cloudflare Workers. Here's my current index.ts file:

```typescript
{{ code }}
```

However, I'm getting these TypeScript errors:

{{ errors_json }}

What's causing these errors and how should I fix my index.ts file?
{% if web_search %}
Please search the internet for the latest Hono.js and Drizzle ORM documentation to help resolve these TypeScript errors.
{% endif %}
Focus specifically on:
- Proper Hono type declarations for Cloudflare Workers
- Correct usage of Drizzle ORM with D1 database
- Any type issues with request/response handling"""

FIX_API = """I need you to generate a fixed version of a Hono API index.ts file. The original file had TypeScript errors that were analyzed, and I'm providing you with the analysis results.

Here's the analysis of the errors:

{{ analysis }}

Here's the original index.ts:

```typescript
{{ original }}
```

Return only the complete fixed index.ts code in a single typescript code block."""

TEMPLATES = {
    "router_system": ROUTER_SYSTEM,
    "ask_next_question_system": ASK_NEXT_QUESTION_SYSTEM,
    "generate_spec_system": GENERATE_SPEC_SYSTEM,
    "analyze_tables_system": ANALYZE_TABLES_SYSTEM,
    "analyze_tables_user": ANALYZE_TABLES_USER,
    "identify_rules_system": IDENTIFY_RULES_SYSTEM,
    "identify_rules_user": IDENTIFY_RULES_USER,
    "generate_schema_system": GENERATE_SCHEMA_SYSTEM,
    "generate_schema_user": GENERATE_SCHEMA_USER,
    "analyze_schema_errors": ANALYZE_SCHEMA_ERRORS,
    "fix_schema": FIX_SCHEMA,
    "generate_api_system": GENERATE_API_SYSTEM,
    "generate_api_user": GENERATE_API_USER,
    "analyze_api_errors": ANALYZE_API_ERRORS,
    "fix_api": FIX_API,
}

_env = Environment(
    loader=DictLoader(TEMPLATES),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
    autoescape=False,
)


def render(name: str, **variables: Any) -> str:
    """
    Render a named prompt template.

    Args:
        name: Template key in TEMPLATES
        **variables: Template variables

    Returns:
        Rendered prompt text
    """
    return _env.get_template(name).render(**variables).strip()
