# constants.py

# Статусы заявки на коннект (жизненный цикл)
REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_ACCEPTED = "accepted"
REQUEST_STATUS_REJECTED = "rejected"
REQUEST_STATUS_WITHDRAWN = "withdrawn"

REQUEST_STATUSES = (
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_ACCEPTED,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_WITHDRAWN,
)

# Производный статус отношений между двумя людьми (в БД не хранится)
CONNECTION_STATE_NONE = "none"
CONNECTION_STATE_PENDING_SENT = "pending_sent"
CONNECTION_STATE_CONNECTED = "connected"

# Статусы проекта
PROJECT_STATUS_OPEN = "open"
PROJECT_STATUS_CLOSED = "closed"

PROJECT_STATUS_OPTIONS = [
    ("🟢 Открыт для участников", PROJECT_STATUS_OPEN),
    ("🔒 Закрыт", PROJECT_STATUS_CLOSED),
]

PROJECT_STATUS_LABELS = {code: label for (label, code) in PROJECT_STATUS_OPTIONS}

# Фильтр ленты проектов: all без фильтра по статусу
PROJECT_STATUS_FILTERS = ("all", PROJECT_STATUS_OPEN, PROJECT_STATUS_CLOSED)

# Технологии для подсказок в фильтре проектов
TECH_OPTIONS = [
    "React",
    "Vue",
    "Svelte",
    "JavaScript",
    "TypeScript",
    "Node.js",
    "Python",
    "Django",
    "Ruby",
    "Rails",
    "GraphQL",
    "REST",
    "MongoDB",
    "PostgreSQL",
    "Firebase",
    "AWS",
    "Docker",
    "Kubernetes",
    "CI/CD",
]

# Подписи кнопок главного меню
MENU_DEVELOPERS = "👥 Разработчики"
MENU_PROJECTS = "🚀 Проекты"
MENU_NEW_PROJECT = "🆕 Новый проект"
MENU_CONNECTIONS = "🤝 Контакты"
MENU_PROFILE = "👤 Профиль"
