#!/usr/bin/env python3
"""
Пример использования библиотеки PySog.

Этот скрипт демонстрирует основные возможности библиотеки:
сжатие облака гауссиан в SOG архив и его обратное чтение.
"""

import io
import logging
import numpy as np
import pysog


def create_sample_cloud(count=2000, sh_degree=1):
    """Создает случайное облако гауссиан для демонстрации."""
    rng = np.random.default_rng(0)

    # Случайные кватернионы единичной длины (x, y, z, w)
    rotations = rng.normal(size=(count, 4))
    rotations /= np.linalg.norm(rotations, axis=1, keepdims=True)

    dims = (sh_degree + 1) ** 2
    return pysog.SplatCloud(
        positions=rng.uniform(-20, 20, size=(count, 3)),
        scales=rng.uniform(-5, -1, size=(count, 3)),      # логарифм масштаба
        rotations=rotations,
        opacities=rng.normal(size=count),                 # логит прозрачности
        sh=rng.uniform(-1, 1, size=(count, dims, 3)),
    )


def main():
    """Основная функция демонстрации."""
    logging.basicConfig(level=logging.INFO)

    print("🚀 Демонстрация библиотеки PySog")
    print("=" * 50)

    # Создаем облако
    print("📦 Создаем облако гауссиан...")
    cloud = create_sample_cloud()
    print(f"✅ Создано: {cloud}")

    # Кодируем в SOG
    print("\n🗜️  Кодируем в SOG...")
    data = pysog.encode(cloud, pysog.SogConfig(seed=0))
    raw_size = sum(a.nbytes for a in cloud.to_dict().values())
    print(f"✅ Размер архива {len(data)} байт (исходные данные {raw_size} байт)")

    # Загружаем обратно
    print("\n📖 Загружаем данные через PySog...")
    result = pysog.load(io.BytesIO(data))
    print("✅ Данные успешно загружены!")
    print(f"📊 Количество гауссиан: {result.count}")

    print("\n📋 Структура данных:")
    for key, array in result.to_dict().items():
        print(f"  {key}: {array.shape} {array.dtype}")

    # Декодер возвращает гауссианы в порядке Мортона
    p = cloud.positions
    expected = cloud.subset(pysog.morton_order(p[:, 0], p[:, 1], p[:, 2]))

    print("\n🔍 Ошибки восстановления:")
    print(f"  Positions: {np.abs(result.positions - expected.positions).max():.5f}")
    print(f"  Scales:    {np.abs(result.scales - expected.scales).mean():.5f}")
    print(f"  Colors:    {np.abs(result.colors - expected.colors).mean():.5f}")

    # Проверяем нормализацию кватернионов
    print("\n🧮 Проверка нормализации кватернионов:")
    norms = np.linalg.norm(result.rotations, axis=1)
    print(f"  Нормы в диапазоне [{norms.min():.6f}, {norms.max():.6f}]")

    print("\n✅ Все проверки пройдены успешно!")
    print("🎉 Библиотека PySog полностью рабочая!")


if __name__ == "__main__":
    main()
