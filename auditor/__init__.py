"""
auditor：自主 UI 互動稽核（dead click 掃描）

流程：
    注入訊號計數器 → 逐路由載入 → 找出可視互動元素 →
    快取 / 連結預檢 / 實際點擊分類 → 復原頁面 → 重新掃描 →
    輸出 interaction-inventory.json，有 dead click 即失敗

附屬掃描器：
    MissingIdentifierScanner：缺少 data-testid 的控制項
    JourneyCoverageScanner：每個路由至少一個 journey 入口可見
"""
