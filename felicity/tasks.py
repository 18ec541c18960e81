from felicity.extensions import scheduler

SWEEP_JOB_ID = "sweep_event_statuses"


def run_status_sweep():
    """Interval job: reconcile event statuses with the clock."""
    from felicity.services.event_service import EventService

    with scheduler.app.app_context():
        try:
            EventService.sweep_statuses()
        except Exception as e:
            # Next tick retries
            scheduler.app.logger.error(f"Event status sweep failed: {str(e)}", exc_info=True)


def configure_scheduler(app):
    """Register the periodic jobs and start the scheduler once per process."""
    if not app.config.get("SCHEDULER_ENABLED") or app.config.get("SCHEDULER_INITIALIZED", False):
        return

    scheduler.init_app(app)
    scheduler.add_job(
        id=SWEEP_JOB_ID,
        func=run_status_sweep,
        trigger="interval",
        seconds=app.config["STATUS_SWEEP_INTERVAL"],
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    app.config["SCHEDULER_INITIALIZED"] = True
    app.logger.info(
        f"Scheduled {SWEEP_JOB_ID} every {app.config['STATUS_SWEEP_INTERVAL']} seconds"
    )
