# lifeup

A small HTTP backend for a gamified personal-growth tracker. It stores users,
tasks (with generated subtasks and recurring daily tasks), skills and a chat
log in SQLite, and serves them as JSON.

## Installing

```
pip install .
```

## Running

```
lifeup
```

The server reads its settings from the environment. It also loads a `.env`
file in the working directory if there is one.

| Variable       | Default              |
|----------------|----------------------|
| `DATABASE_URL` | `sqlite://lifeup.db` |
| `SERVER_HOST`  | `127.0.0.1`          |
| `SERVER_PORT`  | `8080`               |
| `ENVIRONMENT`  | `development`        |
| `RUST_LOG`     | `info`               |

When the server starts, it creates the tables if they are missing and applies
the schema migrations.

## Responses

Every response has this shape:

```json
{"success": true, "data": ..., "message": "..."}
```

On failure, `success` is `false` and `data` is `null`. The HTTP status is 400,
404 or 500.

## Endpoints

| Method | Path                                 | Purpose                                   |
|--------|--------------------------------------|-------------------------------------------|
| GET    | `/health`                            | Health check                              |
| GET    | `/api/users`                         | List users                                |
| POST   | `/api/users`                         | Create a user (`name`, `email`)           |
| GET    | `/api/users/<id>`                    | Fetch one user                            |
| GET    | `/api/tasks`                         | List tasks                                |
| POST   | `/api/tasks`                         | Create a task                             |
| PUT    | `/api/tasks/<id>`                    | Update a task                             |
| GET    | `/api/tasks/type/<task_type>`        | Tasks of one type                         |
| GET    | `/api/tasks/homepage`                | Subtasks and top-level daily tasks        |
| POST   | `/api/tasks/<id>/start`              | Start a parent task and create subtasks   |
| GET    | `/api/tasks/<id>/subtasks`           | List subtasks                             |
| PUT    | `/api/tasks/<id>/pause`              | Pause a task and its open subtasks        |
| PUT    | `/api/tasks/<id>/cancel`             | Cancel a task and drop its open subtasks  |
| PUT    | `/api/tasks/<id>/restart`            | Restart a cancelled parent task           |
| POST   | `/api/recurring-tasks`               | Create a recurring task with templates    |
| POST   | `/api/tasks/<id>/generate-daily`     | Create today's tasks from the templates   |
| GET    | `/api/tasks/<id>/progress`           | Progress of a recurring task              |
| GET    | `/api/skills`                        | List skills                               |
| POST   | `/api/skills`                        | Create a skill                            |
| GET    | `/api/chat/messages`                 | Chat history                              |
| POST   | `/api/chat/send`                     | Send a message and receive a reply        |

Task status codes: 0 pending, 1 in progress, 2 completed, 3 cancelled,
4 paused.

## Example

```
curl -X POST http://127.0.0.1:8080/api/users \
     -H 'Content-Type: application/json' \
     -d '{"name": "Alice", "email": "alice@example.com"}'
```

## Using it from Python

```python
from lifeup.database import Database
from lifeup.app import create_app

db = Database("sqlite://:memory:")
db.create_tables()
db.migrate()
app = create_app(db)
client = app.test_client()
print(client.get("/health").get_json())
```