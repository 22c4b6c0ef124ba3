# devlog/services/summary.py
from devlog.services.aggregation import SummaryStats


def monthly_summary_message(stats: SummaryStats) -> str:
    """
    Texto del resumen del mes para la home, según cuántos diarios y
    troubleshootings lleva el usuario este mes.
    """
    diaries = stats.this_month_diary_count
    troubles = stats.this_month_trouble_count

    if diaries == 0:
        return "🗓 Este mes aún no hay diarios. ¡Empieza un nuevo registro!"
    if diaries <= 2:
        return f"🌱 Este mes llevas {diaries} {_plural(diaries, 'diario', 'diarios')}. ¡Buen comienzo!"
    if diaries <= 5:
        extra = (
            f"¡También hubo {troubles} "
            f"{_plural(troubles, 'troubleshooting', 'troubleshootings')}!"
            if troubles > 0 else "¡Buen ritmo!"
        )
        return f"🔥 Este mes llevas {diaries} diarios. {extra}"
    return (
        f"🌟 Este mes registraste {diaries} diarios y {troubles} "
        f"{_plural(troubles, 'troubleshooting', 'troubleshootings')}. ¡Un mes estupendo! 👏"
    )


def _plural(n: int, one: str, many: str) -> str:
    return one if n == 1 else many
