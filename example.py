from datetime import date

from fx_cbr import FxCbr

print(FxCbr.__version__)  # 0.1.0

# Default Usage (bundled SQLite file)
fx = FxCbr()

# Pull today's CBR rates and reconcile them into the currency table
changed = fx.update_rates()
print(changed)  # => 43

# Stored rates per unit
print(fx.rates(["USD", "JPY"]))
# => {'JPY': Decimal('0.502000'), 'USD': Decimal('75.500000')}

# Rates published for a past date
fx.update_rates(as_of=date(2024, 3, 5))

# Keep the table fresh every 4 hours until Ctrl+C
scheduler = fx.scheduler()
try:
    scheduler.run()
except KeyboardInterrupt:
    scheduler.stop()
finally:
    fx.close()
