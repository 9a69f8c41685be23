from fx_cbr import FxCbr, IngestionSettings

# MongoDB (PostgreSQL and MySQL DSNs work the same way)
settings = IngestionSettings(interval_minutes=60)
fx = FxCbr(db_config="mongodb://127.0.0.1:27017/currency", settings=settings)

success, error = fx.connection()  # => to check the connectivity
if not success:
    print(error)
    exit(1)

print(fx.update_rates())
for currency in fx.currencies():
    print(currency.code, currency.rate_per_unit, currency.updated_at)

# Run the updater on a background thread
scheduler = fx.scheduler()
scheduler.start()
scheduler.stop(timeout=5)
fx.close()
