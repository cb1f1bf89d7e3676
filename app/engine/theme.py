from dataclasses import dataclass


@dataclass(frozen=True)
class Palette:
    name: str
    background: str
    grid: str
    text: str
    axis_text: str
    up: str
    down: str
    line: str
    area_fill: str
    crosshair: str
    tooltip_bg: str
    tooltip_border: str
    tooltip_text: str
    last_price: str
    volume_alpha: str = '66'

    def volume_color(self, bullish: bool) -> str:
        return (self.up if bullish else self.down) + self.volume_alpha


DARK = Palette(
    name='dark',
    background='#131722',
    grid='#2A2E39',
    text='#D1D4DC',
    axis_text='#B2B5BE',
    up='#22C55E',
    down='#EF5350',
    line='#42A5F5',
    area_fill='#42A5F533',
    crosshair='#6B7280',
    tooltip_bg='#141A26',
    tooltip_border='#2A2E39',
    tooltip_text='#FFFFFF',
    last_price='#F59E0B',
)

LIGHT = Palette(
    name='light',
    background='#FFFFFF',
    grid='#E0E3EB',
    text='#131722',
    axis_text='#4B5563',
    up='#16A34A',
    down='#DC2626',
    line='#1E88E5',
    area_fill='#1E88E533',
    crosshair='#9CA3AF',
    tooltip_bg='#F8FAFC',
    tooltip_border='#CBD5E1',
    tooltip_text='#131722',
    last_price='#D97706',
)

PALETTES = {'dark': DARK, 'light': LIGHT}


def palette_for(theme: str) -> Palette:
    try:
        return PALETTES[theme]
    except KeyError:
        raise ValueError(f'Unsupported theme: {theme!r}') from None
