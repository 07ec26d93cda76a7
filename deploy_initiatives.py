from prefect.client.schemas.schedules import CronSchedule

from flows.initiatives_flow import initiatives_enrich, initiatives_ingest

WORK_POOL = "lamap-managed"


if __name__ == "__main__":
    initiatives_ingest.deploy(
        name="initiatives-ingest-weekly",
        work_pool_name=WORK_POOL,
        tags=["ingest", "osm"],
        parameters={"categories": ["all"], "skip_duplicates": True},
        schedule=CronSchedule(
            cron="0 3 * * 1",  # Mondays 03:00 Paris, low Overpass load
            timezone="Europe/Paris",
        ),
        description="Weekly OSM pull of every configured category over the default bbox, proximity-deduplicated.",
        # Prefect 3 deploy() wants an image or remote storage; the process worker runs from the checkout.
        image="lamap/initiatives:placeholder",
    )

    initiatives_enrich.deploy(
        name="initiatives-enrich-nightly",
        work_pool_name=WORK_POOL,
        tags=["enrich", "social"],
        parameters={"limit": 100},
        schedule=CronSchedule(cron="30 4 * * *", timezone="Europe/Paris"),
        description="Nightly social link enrichment for stored initiatives with a website.",
        image="lamap/initiatives:placeholder",
    )
