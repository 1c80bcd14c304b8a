import random
from datetime import datetime, timedelta, timezone

from fleet_dispatch.database import Base, engine, session_scope
from fleet_dispatch import crud, models  # noqa: F401
from fleet_dispatch.activity import status_change_entry

# Datos de ejemplo: 3 sedes, 6 técnicos, 40 órdenes con historial
LOCATIONS = ["loc-north", "loc-south", "loc-east"]

STATUS_PATHS = [
    ["Open"],
    ["Open", "Confirmation"],
    ["Open", "Confirmation", "Ready"],
    ["Open", "Confirmation", "Ready", "In Progress"],
    ["Open", "Confirmation", "Ready", "In Progress", "On Hold"],
    ["Open", "Confirmation", "Ready", "In Progress", "Completed"],
    ["Open", "Cancelled"],
]


def random_status_log(path, created, now, rng=random):
    """Log de cambios para un camino de estados; ningún timestamp pasa de `now`."""
    t = created
    log = []
    for old, new in zip(path, path[1:]):
        t = min(t + timedelta(minutes=rng.randint(15, 600)), now)
        log.append(status_change_entry(old, new, t))
    return log, t


def main():
    Base.metadata.create_all(bind=engine)
    now = datetime.now(timezone.utc)

    with session_scope() as session:
        techs = []
        for i in range(6):
            techs.append(crud.create_technician(
                session,
                name=f"Tech {i + 1}",
                location_id=LOCATIONS[i % len(LOCATIONS)],
                status=random.choice(["available", "available", "busy"]),
                max_concurrent_orders=random.choice([2, 3, 5]),
            ))

        vehicles = [crud.create_vehicle(session, name=f"Truck {i + 1}", license_plate=f"FLT-{100 + i}") for i in range(10)]

        for i in range(40):
            created = now - timedelta(hours=random.randint(6, 240))
            path = random.choice(STATUS_PATHS)
            log, t = random_status_log(path, created, now)

            loc = random.choice(LOCATIONS)
            tech = random.choice([x for x in techs if x.location_id == loc]) if path[-1] in ("In Progress", "On Hold", "Completed") else None
            wo = crud.create_work_order(
                session,
                status=path[-1],
                priority=random.choice(["high", "medium", "low"]),
                location_id=loc,
                vehicle_id=random.choice(vehicles).id,
                created_at=created,
                sla_due=created + timedelta(hours=random.choice([24, 48, 72])),
                completed_at=t if path[-1] == "Completed" else None,
                assigned_technician_id=tech.id if tech else None,
                activity_log=log,
            )
            if path[-1] == "Open":
                crud.enqueue_work_order(session, wo.id, priority=random.randint(0, 3))

    print("Datos de ejemplo creados:", len(techs), "técnicos,", len(vehicles), "vehículos, 40 órdenes")


if __name__ == "__main__":
    main()
