from marketsync import create_app

app = create_app()

# Run a single scheduler instance: set IS_SCHEDULER_INSTANCE=1 on exactly one worker
# gunicorn -w 2 wsgi:app
