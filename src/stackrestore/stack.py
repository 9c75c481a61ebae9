"""The poktpool stack: repositories, databases and application containers."""

from .models import AppContainerSpec, DatabaseTarget, DumpSpec, RepoSpec

REPOSITORIES = (
    RepoSpec("blockjobpicker", "https://github.com/infoboy27/blockjobpicker.git"),
    RepoSpec("poktpooldb", "https://github.com/infoboy27/poktpooldb.git", required=True),
    RepoSpec("poktpoolui", "https://github.com/infoboy27/poktpoolui.git"),
    RepoSpec("poktpool", "https://github.com/infoboy27/poktpool.git"),
)

# Checkout holding the database compose file; dumps are downloaded into it.
DATABASE_REPO = "poktpooldb"

DATABASE_TARGETS = (
    DatabaseTarget(
        service="poktpooldb",
        dump=DumpSpec("poktpooldb"),
        default_database="poktpooldb",
    ),
    DatabaseTarget(
        service="nodedb",
        dump=DumpSpec("waxtrax"),
        database="waxtrax",
    ),
)

APP_CONTAINER_REPO = "blockjobpicker"
APP_CONTAINER = AppContainerSpec(
    name="blockjobpicker",
    image="blockjobpicker:latest",
    ports="5000:3000",
)

COMPOSE_APPS = ("poktpool", "poktpoolui")
